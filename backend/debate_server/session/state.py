from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FloorState(str, Enum):
    IDLE = "idle"
    HELD = "held"


@dataclass
class SessionState:
    current_speaker: str | None = None
    current_topic: str = ""
    topic_updated_at_ms: int | None = None

    @property
    def floor_state(self) -> FloorState:
        return FloorState.IDLE if self.current_speaker is None else FloorState.HELD

    @property
    def has_topic(self) -> bool:
        return self.topic_updated_at_ms is not None
