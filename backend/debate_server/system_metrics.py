import threading
import time
from typing import Any


_lock = threading.Lock()
_COUNTERS = (
    "ws_connections_active",
    "ws_disconnects_total",
    "transcripts_received",
    "transcripts_rate_limited",
    "claims_extracted_empty",
    "pipeline_failures",
    "fact_results_broadcast",
    "floor_transitions",
    "topic_updates",
    "inbound_frames_dropped",
)
_metrics: dict[str, float] = {name: 0.0 for name in _COUNTERS}
_metrics.update({
    "pipeline_latency_total_ms": 0.0,
    "pipeline_latency_samples": 0.0,
})


def increment_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = float(_metrics.get(key, 0.0)) + float(amount)


def decrement_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        next_value = float(_metrics.get(key, 0.0)) - float(amount)
        _metrics[key] = max(0.0, next_value)


def observe_pipeline_latency_ms(value_ms: float) -> None:
    latency = max(0.0, float(value_ms or 0.0))
    with _lock:
        _metrics["pipeline_latency_total_ms"] = float(_metrics.get("pipeline_latency_total_ms", 0.0)) + latency
        _metrics["pipeline_latency_samples"] = float(_metrics.get("pipeline_latency_samples", 0.0)) + 1.0


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        data = dict(_metrics)

    latency_samples = max(1.0, float(data.get("pipeline_latency_samples") or 0.0))

    payload: dict[str, Any] = {"generated_at": time.time()}
    payload.update({name: int(data.get(name) or 0.0) for name in _COUNTERS})
    payload["pipeline_latency_total_ms"] = float(data.get("pipeline_latency_total_ms") or 0.0)
    payload["pipeline_latency_samples"] = int(data.get("pipeline_latency_samples") or 0.0)
    payload["avg_pipeline_latency_ms"] = round(float(data.get("pipeline_latency_total_ms") or 0.0) / latency_samples, 2)

    if extra:
        payload.update(extra)
    return payload
