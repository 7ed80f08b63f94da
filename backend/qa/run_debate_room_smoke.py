import asyncio
import json
import os

import websockets


BASE_URL = os.getenv("DEBATE_WS_URL", "ws://127.0.0.1:2000/ws/debate")


async def run() -> None:
    debater_a = await websockets.connect(BASE_URL)
    debater_b = await websockets.connect(BASE_URL)
    moderator = await websockets.connect(BASE_URL)

    async def recv_some(ws, label: str, n: int = 8, timeout: float = 20.0):
        seen: list[dict] = []
        for _ in range(n):
            try:
                msg = await asyncio.wait_for(ws.recv(), timeout=timeout)
            except Exception:
                break
            data = json.loads(msg)
            seen.append(data)
            print(label, data.get("type"), data.get("currentSpeaker") or data.get("topic") or data.get("verdict") or "")
        return seen

    await moderator.send(json.dumps({"type": "SET_TOPIC", "topic": "Climate policy"}))
    await debater_a.send(json.dumps({"type": "CLAIM_MIC", "speakerId": "A"}))
    await debater_b.send(json.dumps({"type": "CLAIM_MIC", "speakerId": "B"}))
    await debater_a.send(
        json.dumps(
            {
                "type": "TRANSCRIPT_FINAL",
                "speakerId": "A",
                "text": "Country X reduced emissions by 50% last year",
            }
        )
    )
    await debater_a.send(json.dumps({"type": "TRANSCRIPT_FINAL", "speakerId": "A", "text": "Too soon."}))

    moderator_events = await recv_some(moderator, "M")
    moderator_types = [e.get("type") for e in moderator_events]
    print("MODERATOR_TYPES", moderator_types)

    required = {"SPEAKER_UPDATE", "TOPIC_UPDATE", "FACT_RESULT"}
    missing = sorted(required - set(moderator_types))
    if missing:
        raise RuntimeError(f"Missing events moderator={missing}")

    speakers = [e.get("currentSpeaker") for e in moderator_events if e.get("type") == "SPEAKER_UPDATE"]
    if "B" in speakers:
        raise RuntimeError("Second speaker took the floor while it was held")

    await debater_a.send(json.dumps({"type": "RELEASE_MIC", "speakerId": "A"}))
    await recv_some(debater_b, "B", n=6, timeout=3.0)

    await debater_a.close()
    await debater_b.close()
    await moderator.close()


if __name__ == "__main__":
    asyncio.run(run())
