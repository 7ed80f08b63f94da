"""
Parsers for the text generator's responses.

Both stages are pure: a strict decode into the expected shape, and a fixed
fallback constructor for output that cannot be decoded. Nothing here talks
to the network.
"""
from __future__ import annotations

import json
import math
import re
from typing import Any

from debate_server.claims.models import (
    ANALYZED_VERDICTS,
    DEFAULT_DEVIATION_SCORE,
    DEFAULT_SOURCE_CONFIDENCE,
    ClaimCandidate,
    ClaimConfidence,
    ClaimVerdict,
    Verdict,
)

_CODE_FENCE_RE = re.compile(r"```json\n?|```", re.IGNORECASE)
_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)

CLAIM_SEPARATOR = " | "
INACCURATE_TOKEN = "INACCURATE"

NO_TOPIC_REASONING = "No topic deviation reasoning provided."
NO_FACT_REASONING = "No factual deviation reasoning provided."
NOT_SPECIFIED = "Not specified."

UNSTRUCTURED_TOPIC_REASONING = "Topic relevance could not be determined from unstructured AI output."
UNSTRUCTURED_FACT_REASONING = "Factual deviation could not be determined from unstructured AI output."
UNVERIFIED_FACT = "Could not verify."
NO_SOURCE = "N/A"

_VERDICT_LOOKUP = {v.value.lower(): v.value for v in ANALYZED_VERDICTS}
_CONFIDENCE_LOOKUP = {c.value: c.value for c in ClaimConfidence}


def strip_code_fences(raw_text: str) -> str:
    return _CODE_FENCE_RE.sub("", str(raw_text or "")).strip()


def _text_or_default(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def clamp_score(value: Any, default: float) -> float:
    # bool is an int subclass but not a score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and math.isnan(value):
        return default
    return float(min(max(value, 0), 1))


def _source_url(value: Any) -> str | None:
    if isinstance(value, str) and _URL_RE.match(value.strip()):
        return value.strip()
    return None


def _canonical_verdict(value: Any) -> str:
    if not isinstance(value, str):
        return Verdict.UNCERTAIN.value
    return _VERDICT_LOOKUP.get(value.strip().lower(), Verdict.UNCERTAIN.value)


def joined_claim_text(claims: list[ClaimCandidate]) -> str:
    return CLAIM_SEPARATOR.join(c.claim for c in claims)


def parse_claim_candidates(raw_text: str) -> list[ClaimCandidate]:
    """
    Strict stage for extraction output. Raises ValueError when the text is
    not JSON; JSON that is not an array means no claims.
    """
    parsed = json.loads(strip_code_fences(raw_text))
    if not isinstance(parsed, list):
        return []

    candidates: list[ClaimCandidate] = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        claim = item.get("claim")
        if not isinstance(claim, str) or not claim.strip():
            continue
        confidence = str(item.get("confidence") or "").strip().lower()
        candidates.append(
            ClaimCandidate(
                claim=claim.strip(),
                reason=_text_or_default(item.get("reason"), ""),
                confidence=_CONFIDENCE_LOOKUP.get(confidence, ClaimConfidence.LOW.value),
            )
        )
    return candidates


def normalize_verdict_item(item: Any, claims: list[ClaimCandidate]) -> ClaimVerdict:
    data = item if isinstance(item, dict) else {}
    return ClaimVerdict(
        claim=_text_or_default(data.get("claim") or data.get("Claim"), joined_claim_text(claims)),
        verdict=_canonical_verdict(data.get("verdict") or data.get("Verdict")),
        topic_deviation_score=clamp_score(data.get("topicDeviationScore"), DEFAULT_DEVIATION_SCORE),
        topic_deviation_reasoning=_text_or_default(data.get("topicDeviationReasoning"), NO_TOPIC_REASONING),
        fact_deviation_score=clamp_score(data.get("factDeviationScore"), DEFAULT_DEVIATION_SCORE),
        fact_deviation_reasoning=_text_or_default(data.get("factDeviationReasoning"), NO_FACT_REASONING),
        fact=_text_or_default(data.get("fact"), NOT_SPECIFIED),
        source=_text_or_default(data.get("source"), NOT_SPECIFIED),
        source_url=_source_url(data.get("sourceUrl")),
        source_confidence=clamp_score(data.get("sourceConfidence"), DEFAULT_SOURCE_CONFIDENCE),
    )


def fallback_verdict(raw_text: str, claims: list[ClaimCandidate]) -> ClaimVerdict:
    inaccurate = INACCURATE_TOKEN in str(raw_text or "").upper()
    return ClaimVerdict(
        claim=joined_claim_text(claims),
        verdict=Verdict.FALSE.value if inaccurate else Verdict.UNCERTAIN.value,
        topic_deviation_score=DEFAULT_DEVIATION_SCORE,
        topic_deviation_reasoning=UNSTRUCTURED_TOPIC_REASONING,
        fact_deviation_score=DEFAULT_DEVIATION_SCORE,
        fact_deviation_reasoning=UNSTRUCTURED_FACT_REASONING,
        fact=UNVERIFIED_FACT,
        source=NO_SOURCE,
        source_url=None,
        source_confidence=DEFAULT_SOURCE_CONFIDENCE,
    )


def parse_analysis_response(raw_text: str, claims: list[ClaimCandidate]) -> list[ClaimVerdict]:
    """
    Always returns at least one verdict. Arrays are normalized element by
    element, a single object becomes a one-element list, anything else goes
    through the fallback constructor.
    """
    cleaned = strip_code_fences(raw_text)
    try:
        parsed = json.loads(cleaned)
    except (ValueError, RecursionError):
        return [fallback_verdict(cleaned, claims)]

    if isinstance(parsed, list):
        if not parsed:
            return [fallback_verdict(cleaned, claims)]
        return [normalize_verdict_item(item, claims) for item in parsed]
    if isinstance(parsed, dict):
        return [normalize_verdict_item(parsed, claims)]
    return [fallback_verdict(cleaned, claims)]
