from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from debate_server.api.ws_debate import get_debate_handler, router as debate_ws_router
from debate_server.core.config import HOST, PORT
from debate_server.system_metrics import get_metrics_snapshot

logger = logging.getLogger("debate_server.main")


def _get_allowed_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    return [item.strip() for item in raw.split(",") if item.strip()]


@asynccontextmanager
async def lifespan(fast_api: FastAPI):
    # Missing credentials abort startup here instead of failing per transcript
    get_debate_handler()
    logger.info("Debate server started")
    yield
    logger.info("Debate server shutdown")


app = FastAPI(title="Debate Fact-Check Server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_allowed_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(debate_ws_router)


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.get("/metrics")
async def metrics():
    handler = get_debate_handler()
    return get_metrics_snapshot(
        extra={
            "connections": handler.hub.connection_count,
            "current_speaker": handler.coordinator.current_speaker,
            "rate_limit_entries": len(handler.rate_limiter),
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("debate_server.main:app", host=HOST, port=PORT)
