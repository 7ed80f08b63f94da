from __future__ import annotations

from collections import OrderedDict

from debate_server.core import config

COOLDOWN_MS = 15000


class RateLimiter:
    """Per-connection cooldown between accepted transcript submissions."""

    def __init__(self, cooldown_ms: int = COOLDOWN_MS, max_entries: int | None = None):
        self.cooldown_ms = int(cooldown_ms)
        self.max_entries = max(1, int(max_entries or config.RATE_LIMIT_MAX_CONNECTIONS))
        self._last_accepted: OrderedDict[str, int] = OrderedDict()

    def __len__(self) -> int:
        return len(self._last_accepted)

    def last_accepted(self, connection_id: str) -> int | None:
        return self._last_accepted.get(connection_id)

    def _evict_expired(self, now_ms: int) -> None:
        # entries past their cooldown act exactly like absent ones
        while len(self._last_accepted) > self.max_entries:
            oldest_id, oldest_ts = next(iter(self._last_accepted.items()))
            if (now_ms - oldest_ts) < self.cooldown_ms:
                # everything left is still cooling down; let the map grow
                return
            self._last_accepted.pop(oldest_id)

    def allow(self, connection_id: str, now_ms: int) -> bool:
        last = self._last_accepted.get(connection_id)
        if last is not None and (now_ms - last) < self.cooldown_ms:
            return False

        self._last_accepted[connection_id] = int(now_ms)
        self._last_accepted.move_to_end(connection_id)
        self._evict_expired(now_ms)
        return True
