from __future__ import annotations

import logging

from debate_server.session.state import FloorState, SessionState

logger = logging.getLogger("debate_server.session.coordinator")


class SessionCoordinator:
    """
    Owns the shared session: who holds the mic and what the topic is.

    Methods return whether the state changed so the caller knows when to
    broadcast. Conflicting floor requests are ignored without error.
    """

    def __init__(self, state: SessionState | None = None):
        self.state = state or SessionState()

    @property
    def current_speaker(self) -> str | None:
        return self.state.current_speaker

    @property
    def current_topic(self) -> str:
        return self.state.current_topic

    def claim_floor(self, speaker_id: str) -> bool:
        # the label is stored as sent so clients can match it back
        speaker = str(speaker_id or "")
        if not speaker.strip():
            return False
        if self.state.floor_state == FloorState.HELD and self.state.current_speaker != speaker:
            logger.info("Floor claim ignored | requested_by=%r held_by=%r", speaker, self.state.current_speaker)
            return False
        self.state.current_speaker = speaker
        logger.info("Floor claimed | speaker=%r", speaker)
        return True

    def release_floor(self, speaker_id: str) -> bool:
        speaker = str(speaker_id or "")
        if self.state.floor_state != FloorState.HELD or self.state.current_speaker != speaker:
            logger.info("Floor release ignored | requested_by=%r held_by=%r", speaker, self.state.current_speaker)
            return False
        self.state.current_speaker = None
        logger.info("Floor released | speaker=%r", speaker)
        return True

    def set_topic(self, topic: str, now_ms: int) -> str:
        self.state.current_topic = str(topic or "")
        self.state.topic_updated_at_ms = int(now_ms)
        return self.state.current_topic
