from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Callable

from fastapi import APIRouter, WebSocket
from pydantic import ValidationError

from debate_server.api.broadcast import BroadcastHub, DebateSocket
from debate_server.api.events import (
    ClaimMicEvent,
    FactResult,
    InboundEvent,
    PingEvent,
    Pong,
    ReleaseMicEvent,
    SetTopicEvent,
    SpeakerUpdate,
    TopicUpdate,
    TranscriptFinalEvent,
    now_ms,
    parse_inbound_event,
)
from debate_server.claims.models import Verdict, synthetic_verdict
from debate_server.claims.pipeline import AnalysisPipeline
from debate_server.core.config import WS_MAX_TEXT_BYTES
from debate_server.core.logger import log_event, summarize_verdicts
from debate_server.session.coordinator import SessionCoordinator
from debate_server.session.rate_limiter import RateLimiter
from debate_server.system_metrics import (
    decrement_metric,
    increment_metric,
    observe_pipeline_latency_ms,
)

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger("ws_debate")

RATE_LIMITED_MESSAGE = "Please wait before submitting another claim."
SERVICE_UNAVAILABLE_MESSAGE = "Fact-checking service unavailable"

router = APIRouter()


class DebateEventHandler:
    """Routes inbound participant events to the session, limiter and pipeline."""

    def __init__(
        self,
        coordinator: SessionCoordinator,
        rate_limiter: RateLimiter,
        hub: BroadcastHub,
        pipeline: AnalysisPipeline,
        clock: Callable[[], int] = now_ms,
    ):
        self.coordinator = coordinator
        self.rate_limiter = rate_limiter
        self.hub = hub
        self.pipeline = pipeline
        self.clock = clock
        self._inflight: set[asyncio.Task] = set()

    async def on_connect(self, connection_id: str, websocket: DebateSocket) -> None:
        await self.hub.register(connection_id, websocket)
        log_event("ws_debate", "connect", connection_id, connections=self.hub.connection_count)
        await self.hub.send_to(connection_id, SpeakerUpdate(self.coordinator.current_speaker))
        state = self.coordinator.state
        if state.has_topic:
            await self.hub.send_to(connection_id, TopicUpdate(state.current_topic, int(state.topic_updated_at_ms)))

    async def on_disconnect(self, connection_id: str) -> None:
        # in-flight analyses keep running and still broadcast to everyone else
        await self.hub.unregister(connection_id)
        log_event("ws_debate", "disconnect", connection_id, connections=self.hub.connection_count)

    async def handle_text(self, connection_id: str, raw_text: str) -> None:
        try:
            event = parse_inbound_event(raw_text)
        except ValidationError as exc:
            increment_metric("inbound_frames_dropped")
            log_event("ws_debate", "invalid_frame", connection_id, errors=exc.error_count())
            return
        await self.handle_event(connection_id, event)

    async def handle_event(self, connection_id: str, event: InboundEvent) -> None:
        if isinstance(event, ClaimMicEvent):
            await self.claim_mic(connection_id, event.speakerId)
        elif isinstance(event, ReleaseMicEvent):
            await self.release_mic(connection_id, event.speakerId)
        elif isinstance(event, SetTopicEvent):
            await self.set_topic(connection_id, event.topic)
        elif isinstance(event, TranscriptFinalEvent):
            self.submit_transcript(connection_id, event.speakerId, event.text)
        elif isinstance(event, PingEvent):
            await self.hub.send_to(connection_id, Pong(time.time()))

    async def claim_mic(self, connection_id: str, speaker_id: str) -> None:
        if not self.coordinator.claim_floor(speaker_id):
            return
        increment_metric("floor_transitions")
        log_event("ws_debate", "mic_claimed", connection_id, speaker_id=speaker_id)
        await self.hub.publish(SpeakerUpdate(self.coordinator.current_speaker))

    async def release_mic(self, connection_id: str, speaker_id: str) -> None:
        if not self.coordinator.release_floor(speaker_id):
            return
        increment_metric("floor_transitions")
        log_event("ws_debate", "mic_released", connection_id, speaker_id=speaker_id)
        await self.hub.publish(SpeakerUpdate(self.coordinator.current_speaker))

    async def set_topic(self, connection_id: str, topic: str) -> None:
        timestamp = self.clock()
        current = self.coordinator.set_topic(topic, timestamp)
        increment_metric("topic_updates")
        log_event("ws_debate", "topic_set", connection_id, topic=current)
        await self.hub.publish(TopicUpdate(current, timestamp))

    def submit_transcript(self, connection_id: str, speaker_id: str, text: str) -> asyncio.Task:
        """
        Applies the rate limit synchronously, then runs the analysis in the
        background so this connection's later events are not held up.
        """
        increment_metric("transcripts_received")
        if not self.rate_limiter.allow(connection_id, self.clock()):
            increment_metric("transcripts_rate_limited")
            log_event("ws_debate", "rate_limited", connection_id, speaker_id=speaker_id)
            coro = self._broadcast_synthetic(speaker_id, text, Verdict.RATE_LIMITED, RATE_LIMITED_MESSAGE)
        else:
            log_event("ws_debate", "transcript_accepted", connection_id, speaker_id=speaker_id, text=text)
            coro = self._analyze_and_broadcast(connection_id, speaker_id, text, self.coordinator.current_topic)

        task = asyncio.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def drain(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _broadcast_synthetic(self, speaker_id: str, text: str, verdict: Verdict, message: str) -> None:
        await self.hub.publish(
            FactResult(
                speaker_id=speaker_id,
                verdict=synthetic_verdict(text, verdict, message),
                timestamp=self.clock(),
                analysis=message,
            )
        )

    async def _analyze_and_broadcast(self, connection_id: str, speaker_id: str, text: str, topic: str) -> None:
        started = time.perf_counter()
        try:
            verdicts = await self.pipeline.run(text, topic)
        except Exception as exc:
            increment_metric("pipeline_failures")
            logger.error("Fact check error | connection_id=%s err=%s", connection_id, exc)
            await self._broadcast_synthetic(speaker_id, text, Verdict.ERROR, SERVICE_UNAVAILABLE_MESSAGE)
            return
        finally:
            observe_pipeline_latency_ms((time.perf_counter() - started) * 1000.0)

        if not verdicts:
            increment_metric("claims_extracted_empty")
            log_event("ws_debate", "no_claims", connection_id, speaker_id=speaker_id)
            return

        log_event("ws_debate", "verdicts_ready", connection_id, speaker_id=speaker_id, verdict_counts=summarize_verdicts(verdicts))
        for verdict in verdicts:
            await self.hub.publish(FactResult(speaker_id=speaker_id, verdict=verdict, timestamp=self.clock()))
            increment_metric("fact_results_broadcast")


class DebateDependencyProvider:
    def create_coordinator(self) -> SessionCoordinator:
        return SessionCoordinator()

    def create_rate_limiter(self) -> RateLimiter:
        return RateLimiter()

    def create_hub(self) -> BroadcastHub:
        return BroadcastHub()

    def create_pipeline(self) -> AnalysisPipeline:
        return AnalysisPipeline.from_config()


dependency_provider = DebateDependencyProvider()
_debate_handler: DebateEventHandler | None = None


def get_debate_handler() -> DebateEventHandler:
    """Process-wide handler; the pipeline is built here so a missing credential fails on first use."""
    global _debate_handler
    if _debate_handler is None:
        _debate_handler = DebateEventHandler(
            coordinator=dependency_provider.create_coordinator(),
            rate_limiter=dependency_provider.create_rate_limiter(),
            hub=dependency_provider.create_hub(),
            pipeline=dependency_provider.create_pipeline(),
        )
    return _debate_handler


def reset_debate_handler() -> None:
    global _debate_handler
    _debate_handler = None


@router.websocket("/ws/debate")
async def debate_ws(websocket: WebSocket):
    handler = get_debate_handler()
    connection_id = str(uuid.uuid4())

    await websocket.accept()
    await handler.on_connect(connection_id, websocket)
    increment_metric("ws_connections_active", 1)

    try:
        while True:
            msg = await websocket.receive()
            if msg["type"] == "websocket.disconnect":
                break

            text_payload = msg.get("text")
            if not text_payload:
                continue
            if len(text_payload.encode("utf-8")) > WS_MAX_TEXT_BYTES:
                increment_metric("inbound_frames_dropped")
                logger.warning("WS message too large | connection_id=%s bytes=%s", connection_id, len(text_payload.encode("utf-8")))
                continue

            await handler.handle_text(connection_id, text_payload)
    finally:
        await handler.on_disconnect(connection_id)
        decrement_metric("ws_connections_active", 1)
        increment_metric("ws_disconnects_total")
