"""Per-invocation traces and aggregate pipeline metrics."""

from __future__ import annotations

import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone

from answer_relay.types import PipelineResult


@dataclass(slots=True)
class PipelineTrace:
    trace_id: str
    timestamp_utc: str
    query: str
    outcome: str
    cause: str | None
    parse_stage: str | None
    hit_count: int
    candidate_count: int
    answer_count: int
    rules: list[str] = field(default_factory=list)
    latency_ms: float = 0.0


class TraceStore:
    """In-memory trace storage keeping the newest `max_records` entries.

    This is where degraded causes stay observable, since the caller-facing
    answer text is identical for every failure mode.
    """

    def __init__(self, *, max_records: int = 1000) -> None:
        self._records: dict[str, PipelineTrace] = {}
        self._max_records = max_records
        self._lock = threading.Lock()

    def create_record(
        self,
        *,
        query: str,
        result: PipelineResult,
        hit_count: int,
        candidate_count: int,
        latency_ms: float,
    ) -> PipelineTrace:
        record = PipelineTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            query=query,
            outcome=result.outcome,
            cause=result.cause.value if result.cause is not None else None,
            parse_stage=result.parse_stage,
            hit_count=hit_count,
            candidate_count=candidate_count,
            answer_count=len(result.answers),
            rules=list(result.rules),
            latency_ms=latency_ms,
        )
        with self._lock:
            self._records[record.trace_id] = record
            while len(self._records) > self._max_records:
                self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> PipelineTrace:
        with self._lock:
            record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[PipelineTrace]:
        with self._lock:
            return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, object]:
        """Aggregate outcome and latency metrics for dashboard display."""
        with self._lock:
            records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "success": 0,
                "degraded": 0,
                "degraded_by_cause": {},
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        causes = Counter(record.cause for record in records if record.cause is not None)
        degraded = sum(causes.values())

        return {
            "total_requests": total,
            "success": total - degraded,
            "degraded": degraded,
            "degraded_by_cause": dict(causes),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
        }


class Timer:
    """Simple context timer used by the pipelines."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
