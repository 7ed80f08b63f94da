"""
Structured event log for the debate server.

Every line is one JSON object: which component emitted it, what happened,
the connection and (when known) the speaker. Spoken text never reaches the
log; fields that carry transcript, claim or topic text are replaced by their
length.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Iterable

logger = logging.getLogger("debate_server")

CONTENT_FIELDS = frozenset({"text", "transcript", "claim", "claims", "prompt", "topic"})


def redact(text: Any) -> dict[str, Any]:
    return {"redacted": True, "length": len(str(text or ""))}


def _scrub(name: str, value: Any) -> Any:
    if name.lower() in CONTENT_FIELDS:
        if isinstance(value, (list, tuple)):
            return [redact(item) for item in value]
        return redact(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _scrub(str(key), item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_scrub(name, item) for item in value]
    return str(value)


def summarize_verdicts(verdicts: Iterable[Any]) -> dict[str, int]:
    """Verdict label -> count, for logging a batch without its claim text."""
    counts = Counter(str(getattr(v, "verdict", "") or "Uncertain") for v in verdicts)
    return dict(sorted(counts.items()))


def log_event(
    component: str,
    event: str,
    connection_id: str,
    *,
    speaker_id: str | None = None,
    **fields: Any,
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "component": component or "debate_server",
        "event": event or "unknown",
        "connection_id": connection_id or "",
    }
    if speaker_id is not None:
        record["speaker_id"] = speaker_id
    for name, value in fields.items():
        record[name] = _scrub(name, value)

    logger.info(json.dumps(record, ensure_ascii=False, default=str))
    return record
