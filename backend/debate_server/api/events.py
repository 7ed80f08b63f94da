from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from debate_server.claims.models import ClaimVerdict


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------- inbound (participant -> server) ----------

class ClaimMicEvent(BaseModel):
    type: Literal["CLAIM_MIC"]
    speakerId: str = Field(min_length=1)


class ReleaseMicEvent(BaseModel):
    type: Literal["RELEASE_MIC"]
    speakerId: str = Field(min_length=1)


class SetTopicEvent(BaseModel):
    type: Literal["SET_TOPIC"]
    topic: str


class TranscriptFinalEvent(BaseModel):
    type: Literal["TRANSCRIPT_FINAL"]
    speakerId: str = Field(min_length=1)
    text: str


class PingEvent(BaseModel):
    type: Literal["ping"]


InboundEvent = Annotated[
    Union[ClaimMicEvent, ReleaseMicEvent, SetTopicEvent, TranscriptFinalEvent, PingEvent],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundEvent)


def parse_inbound_event(raw_text: str) -> InboundEvent:
    """Raises pydantic.ValidationError for non-JSON, unknown types or bad payloads."""
    return _inbound_adapter.validate_json(raw_text)


# ---------- outbound (server -> every participant) ----------

class OutboundType(str, Enum):
    SPEAKER_UPDATE = "SPEAKER_UPDATE"
    TOPIC_UPDATE = "TOPIC_UPDATE"
    FACT_RESULT = "FACT_RESULT"
    PONG = "pong"


@dataclass(frozen=True)
class SpeakerUpdate:
    current_speaker: str | None

    def to_payload(self) -> dict:
        return {
            "type": OutboundType.SPEAKER_UPDATE.value,
            "currentSpeaker": self.current_speaker,
        }


@dataclass(frozen=True)
class TopicUpdate:
    topic: str
    timestamp: int

    def to_payload(self) -> dict:
        return {
            "type": OutboundType.TOPIC_UPDATE.value,
            "topic": self.topic,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class FactResult:
    speaker_id: str
    verdict: ClaimVerdict
    timestamp: int
    analysis: str | None = None

    def to_payload(self) -> dict:
        payload = {
            "type": OutboundType.FACT_RESULT.value,
            "speakerId": self.speaker_id,
            **self.verdict.to_payload(),
            "timestamp": self.timestamp,
        }
        if self.analysis is not None:
            payload["analysis"] = self.analysis
        return payload


@dataclass(frozen=True)
class Pong:
    ts: float

    def to_payload(self) -> dict:
        return {"type": OutboundType.PONG.value, "ts": self.ts}


OutboundEvent = Union[SpeakerUpdate, TopicUpdate, FactResult, Pong]
