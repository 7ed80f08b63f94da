import asyncio
import json
import logging

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from debate_server.api import ws_debate
from debate_server.api.broadcast import BroadcastHub
from debate_server.api.events import SpeakerUpdate
from debate_server.claims.models import ClaimVerdict
from debate_server.session.coordinator import SessionCoordinator
from debate_server.session.rate_limiter import RateLimiter


class FakeWebSocket:
    def __init__(self):
        self.client_state = WebSocketState.CONNECTED
        self.sent = []

    async def send_text(self, payload: str):
        await asyncio.sleep(0)
        self.sent.append(payload)

    def messages(self, message_type: str | None = None) -> list[dict]:
        decoded = [json.loads(item) for item in self.sent]
        if message_type is None:
            return decoded
        return [item for item in decoded if item["type"] == message_type]


class BrokenWebSocket(FakeWebSocket):
    async def send_text(self, payload: str):
        raise RuntimeError("socket closed")


class FakeClock:
    def __init__(self, now: int = 1_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakePipeline:
    def __init__(self, verdicts=None, error: Exception | None = None, gate: asyncio.Event | None = None):
        self.verdicts = list(verdicts or [])
        self.error = error
        self.gate = gate
        self.calls = []

    async def run(self, transcript: str, topic: str):
        self.calls.append({"transcript": transcript, "topic": topic})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.verdicts)


def _verdict(claim: str, verdict: str = "True") -> ClaimVerdict:
    return ClaimVerdict(
        claim=claim,
        verdict=verdict,
        topic_deviation_score=0.1,
        topic_deviation_reasoning="On topic.",
        fact_deviation_score=0.2,
        fact_deviation_reasoning="Mostly accurate.",
        fact="Country X cut emissions by about 12%.",
        source="IEA",
        source_url="https://www.iea.org/reports/x",
        source_confidence=0.8,
    )


def _handler(pipeline, clock=None) -> ws_debate.DebateEventHandler:
    return ws_debate.DebateEventHandler(
        coordinator=SessionCoordinator(),
        rate_limiter=RateLimiter(),
        hub=BroadcastHub(),
        pipeline=pipeline,
        clock=clock or FakeClock(),
    )


def _send(handler, connection_id: str, payload: dict):
    return handler.handle_text(connection_id, json.dumps(payload))


@pytest.mark.asyncio
async def test_connect_receives_current_speaker():
    handler = _handler(FakePipeline())
    ws = FakeWebSocket()

    await handler.on_connect("c1", ws)

    assert ws.messages() == [{"type": "SPEAKER_UPDATE", "currentSpeaker": None}]


@pytest.mark.asyncio
async def test_late_joiner_receives_speaker_and_topic():
    clock = FakeClock(42_000)
    handler = _handler(FakePipeline(), clock)
    first = FakeWebSocket()
    await handler.on_connect("c1", first)
    await _send(handler, "c1", {"type": "CLAIM_MIC", "speakerId": "A"})
    await _send(handler, "c1", {"type": "SET_TOPIC", "topic": "Climate policy"})

    clock.now = 50_000
    late = FakeWebSocket()
    await handler.on_connect("c2", late)

    assert late.messages() == [
        {"type": "SPEAKER_UPDATE", "currentSpeaker": "A"},
        {"type": "TOPIC_UPDATE", "topic": "Climate policy", "timestamp": 42_000},
    ]


@pytest.mark.asyncio
async def test_floor_events_broadcast_only_on_transitions():
    handler = _handler(FakePipeline())
    ws_a, ws_b = FakeWebSocket(), FakeWebSocket()
    await handler.on_connect("a", ws_a)
    await handler.on_connect("b", ws_b)

    await _send(handler, "a", {"type": "CLAIM_MIC", "speakerId": "A"})
    await _send(handler, "b", {"type": "CLAIM_MIC", "speakerId": "B"})
    await _send(handler, "b", {"type": "RELEASE_MIC", "speakerId": "B"})
    await _send(handler, "a", {"type": "RELEASE_MIC", "speakerId": "A"})

    for ws in (ws_a, ws_b):
        updates = [m["currentSpeaker"] for m in ws.messages("SPEAKER_UPDATE")]
        assert updates == [None, "A", None]


@pytest.mark.asyncio
async def test_set_topic_twice_broadcasts_twice_with_same_value():
    clock = FakeClock()
    handler = _handler(FakePipeline(), clock)
    ws = FakeWebSocket()
    await handler.on_connect("c1", ws)

    await _send(handler, "c1", {"type": "SET_TOPIC", "topic": "Climate policy"})
    clock.now += 10
    await _send(handler, "c1", {"type": "SET_TOPIC", "topic": "Climate policy"})

    updates = ws.messages("TOPIC_UPDATE")
    assert [u["topic"] for u in updates] == ["Climate policy", "Climate policy"]
    assert updates[1]["timestamp"] == updates[0]["timestamp"] + 10
    assert handler.coordinator.current_topic == "Climate policy"


@pytest.mark.asyncio
async def test_end_to_end_transcript_produces_one_fact_result():
    clock = FakeClock(77_000)
    pipeline = FakePipeline([_verdict("Country X reduced emissions by 50% last year", "Misleading")])
    handler = _handler(pipeline, clock)
    debater, moderator = FakeWebSocket(), FakeWebSocket()
    await handler.on_connect("debater", debater)
    await handler.on_connect("moderator", moderator)

    await _send(handler, "moderator", {"type": "SET_TOPIC", "topic": "Climate policy"})
    await _send(
        handler,
        "debater",
        {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "Country X reduced emissions by 50% last year"},
    )
    await handler.drain()

    assert pipeline.calls == [
        {"transcript": "Country X reduced emissions by 50% last year", "topic": "Climate policy"}
    ]
    for ws in (debater, moderator):
        results = ws.messages("FACT_RESULT")
        assert len(results) == 1
        result = results[0]
        assert result["speakerId"] == "A"
        assert result["verdict"] == "Misleading"
        assert result["fact"] == "Country X cut emissions by about 12%."
        assert result["source"] == "IEA"
        assert result["sourceUrl"] == "https://www.iea.org/reports/x"
        assert result["timestamp"] == 77_000
        assert "analysis" not in result


@pytest.mark.asyncio
async def test_multiple_verdicts_are_broadcast_separately():
    pipeline = FakePipeline([_verdict("one"), _verdict("two", "False"), _verdict("three", "Uncertain")])
    handler = _handler(pipeline)
    ws = FakeWebSocket()
    await handler.on_connect("c1", ws)

    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "B", "text": "three claims"})
    await handler.drain()

    results = ws.messages("FACT_RESULT")
    assert [r["claim"] for r in results] == ["one", "two", "three"]
    assert {r["speakerId"] for r in results} == {"B"}


@pytest.mark.asyncio
async def test_no_claims_means_no_broadcast():
    handler = _handler(FakePipeline([]))
    ws = FakeWebSocket()
    await handler.on_connect("c1", ws)

    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "I just feel it is wrong"})
    await handler.drain()

    assert ws.messages("FACT_RESULT") == []


@pytest.mark.asyncio
async def test_rate_limit_rejects_within_cooldown_and_recovers_after():
    clock = FakeClock(1_000)
    pipeline = FakePipeline([_verdict("claim")])
    handler = _handler(pipeline, clock)
    ws = FakeWebSocket()
    await handler.on_connect("c1", ws)

    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "first"})
    await handler.drain()

    clock.now = 6_000
    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "second"})
    await handler.drain()

    clock.now = 16_001
    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "third"})
    await handler.drain()

    assert [c["transcript"] for c in pipeline.calls] == ["first", "third"]
    results = ws.messages("FACT_RESULT")
    assert [r["verdict"] for r in results] == ["True", "rate_limited", "True"]

    rejected = results[1]
    assert rejected["claim"] == "second"
    assert rejected["speakerId"] == "A"
    assert rejected["analysis"] == ws_debate.RATE_LIMITED_MESSAGE
    assert rejected["topicDeviationScore"] == 0.5
    assert rejected["sourceConfidence"] == 0.0


@pytest.mark.asyncio
async def test_rate_limit_is_per_connection_not_per_speaker():
    pipeline = FakePipeline([_verdict("claim")])
    handler = _handler(pipeline)
    ws_1, ws_2 = FakeWebSocket(), FakeWebSocket()
    await handler.on_connect("c1", ws_1)
    await handler.on_connect("c2", ws_2)

    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "from one"})
    await _send(handler, "c2", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "from two"})
    await handler.drain()

    assert sorted(c["transcript"] for c in pipeline.calls) == ["from one", "from two"]
    assert [r["verdict"] for r in ws_1.messages("FACT_RESULT")] == ["True", "True"]


@pytest.mark.asyncio
async def test_pipeline_failure_broadcasts_error_result():
    handler = _handler(FakePipeline(error=ConnectionError("quota exceeded")))
    ws = FakeWebSocket()
    await handler.on_connect("c1", ws)

    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "GDP doubled"})
    await handler.drain()

    results = ws.messages("FACT_RESULT")
    assert len(results) == 1
    assert results[0]["verdict"] == "error"
    assert results[0]["claim"] == "GDP doubled"
    assert results[0]["analysis"] == ws_debate.SERVICE_UNAVAILABLE_MESSAGE


@pytest.mark.asyncio
async def test_disconnect_does_not_cancel_inflight_analysis():
    gate = asyncio.Event()
    handler = _handler(FakePipeline([_verdict("claim")], gate=gate))
    submitter, viewer = FakeWebSocket(), FakeWebSocket()
    await handler.on_connect("submitter", submitter)
    await handler.on_connect("viewer", viewer)

    await _send(handler, "submitter", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "claim"})
    await handler.on_disconnect("submitter")
    gate.set()
    await handler.drain()

    assert submitter.messages("FACT_RESULT") == []
    assert len(viewer.messages("FACT_RESULT")) == 1


@pytest.mark.asyncio
async def test_floor_events_are_handled_while_analysis_is_pending():
    gate = asyncio.Event()
    handler = _handler(FakePipeline([_verdict("claim")], gate=gate))
    ws = FakeWebSocket()
    await handler.on_connect("c1", ws)

    await _send(handler, "c1", {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "claim"})
    await _send(handler, "c1", {"type": "CLAIM_MIC", "speakerId": "A"})
    assert handler.coordinator.current_speaker == "A"

    gate.set()
    await handler.drain()
    assert [m["type"] for m in ws.messages()][-1] == "FACT_RESULT"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"type": "SHOUT", "speakerId": "A"}),
        json.dumps({"type": "CLAIM_MIC"}),
        json.dumps({"type": "TRANSCRIPT_FINAL", "speakerId": "A"}),
        json.dumps(["CLAIM_MIC", "A"]),
    ],
)
async def test_invalid_frames_are_dropped(raw):
    pipeline = FakePipeline()
    handler = _handler(pipeline)
    ws = FakeWebSocket()
    await handler.on_connect("c1", ws)

    await handler.handle_text("c1", raw)
    await handler.drain()

    assert len(ws.sent) == 1
    assert pipeline.calls == []
    assert handler.coordinator.current_speaker is None


@pytest.mark.asyncio
async def test_ping_answers_only_the_sender():
    handler = _handler(FakePipeline())
    ws_1, ws_2 = FakeWebSocket(), FakeWebSocket()
    await handler.on_connect("c1", ws_1)
    await handler.on_connect("c2", ws_2)

    await _send(handler, "c1", {"type": "ping"})

    assert len(ws_1.messages("pong")) == 1
    assert ws_2.messages("pong") == []


@pytest.mark.asyncio
async def test_hub_skips_failing_and_closed_sockets():
    hub = BroadcastHub()
    healthy, broken, closed = FakeWebSocket(), BrokenWebSocket(), FakeWebSocket()
    closed.client_state = WebSocketState.DISCONNECTED
    await hub.register("healthy", healthy)
    await hub.register("broken", broken)
    await hub.register("closed", closed)

    delivered = await hub.publish(SpeakerUpdate("A"))

    assert delivered == 1
    assert healthy.messages() == [{"type": "SPEAKER_UPDATE", "currentSpeaker": "A"}]
    assert closed.sent == []


@pytest.mark.asyncio
async def test_hub_serializes_concurrent_publishes_per_connection():
    hub = BroadcastHub()
    ws = FakeWebSocket()
    await hub.register("c1", ws)

    await asyncio.gather(*[hub.publish(SpeakerUpdate(str(i))) for i in range(50)])

    assert sorted(int(m["currentSpeaker"]) for m in ws.messages()) == list(range(50))


def test_websocket_round_trip(monkeypatch: pytest.MonkeyPatch):
    from debate_server.main import app

    pipeline = FakePipeline([_verdict("Country X reduced emissions by 50% last year")])
    monkeypatch.setattr(ws_debate.dependency_provider, "create_pipeline", lambda: pipeline)

    with TestClient(app) as client:
        assert client.get("/healthz").json() == {"ok": True}

        with client.websocket_connect("/ws/debate") as debater, client.websocket_connect("/ws/debate") as moderator:
            assert debater.receive_json() == {"type": "SPEAKER_UPDATE", "currentSpeaker": None}
            assert moderator.receive_json() == {"type": "SPEAKER_UPDATE", "currentSpeaker": None}

            moderator.send_json({"type": "SET_TOPIC", "topic": "Climate policy"})
            assert debater.receive_json()["topic"] == "Climate policy"
            assert moderator.receive_json()["type"] == "TOPIC_UPDATE"

            debater.send_json({"type": "CLAIM_MIC", "speakerId": "A"})
            assert moderator.receive_json() == {"type": "SPEAKER_UPDATE", "currentSpeaker": "A"}
            assert debater.receive_json() == {"type": "SPEAKER_UPDATE", "currentSpeaker": "A"}

            debater.send_json(
                {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "Country X reduced emissions by 50% last year"}
            )
            result = moderator.receive_json()
            assert result["type"] == "FACT_RESULT"
            assert result["speakerId"] == "A"
            assert result["claim"] == "Country X reduced emissions by 50% last year"
            assert debater.receive_json()["type"] == "FACT_RESULT"

        metrics = client.get("/metrics").json()
        assert metrics["current_speaker"] == "A"
        assert pipeline.calls[0]["topic"] == "Climate policy"


def test_oversize_frame_is_dropped_and_connection_stays_open(monkeypatch: pytest.MonkeyPatch):
    from debate_server.main import app

    monkeypatch.setattr(ws_debate.dependency_provider, "create_pipeline", lambda: FakePipeline())
    monkeypatch.setattr(ws_debate, "WS_MAX_TEXT_BYTES", 64)

    with TestClient(app) as client:
        dropped_before = client.get("/metrics").json()["inbound_frames_dropped"]

        with client.websocket_connect("/ws/debate") as ws:
            assert ws.receive_json()["type"] == "SPEAKER_UPDATE"

            ws.send_json({"type": "SET_TOPIC", "topic": "x" * 200})
            ws.send_json({"type": "SET_TOPIC", "topic": "Energy"})

            update = ws.receive_json()
            assert update["type"] == "TOPIC_UPDATE"
            assert update["topic"] == "Energy"

        assert client.get("/metrics").json()["inbound_frames_dropped"] == dropped_before + 1


def _logged_events(caplog: pytest.LogCaptureFixture) -> list[dict]:
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "debate_server"]


@pytest.mark.asyncio
async def test_topic_and_transcript_text_never_reach_the_log(caplog: pytest.LogCaptureFixture):
    handler = _handler(FakePipeline([_verdict("Country X reduced emissions by 50% last year", "Misleading")]))
    await handler.on_connect("c1", FakeWebSocket())

    with caplog.at_level(logging.INFO, logger="debate_server"):
        await _send(handler, "c1", {"type": "SET_TOPIC", "topic": "Climate policy"})
        await _send(
            handler,
            "c1",
            {"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "Country X reduced emissions by 50% last year"},
        )
        await handler.drain()

    assert "Climate policy" not in caplog.text
    assert "reduced emissions" not in caplog.text

    events = {e["event"]: e for e in _logged_events(caplog)}
    assert events["topic_set"]["topic"] == {"redacted": True, "length": 14}
    assert events["transcript_accepted"]["text"] == {"redacted": True, "length": 44}
    assert events["transcript_accepted"]["speaker_id"] == "A"
    assert events["verdicts_ready"]["verdict_counts"] == {"Misleading": 1}
