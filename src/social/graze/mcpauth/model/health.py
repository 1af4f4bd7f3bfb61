import asyncio
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class HealthSnapshot:
    score: int
    threshold: int
    healthy: bool
    last_failure: Optional[str]
    failures: Dict[str, int]


class HealthGauge:
    """
    Burst-of-failures health gauge used for readiness probes.

    Every unexpected server-side failure (storage errors during a grant, failed
    cleanup sweeps, unhandled handler exceptions) is reported with `womp` and the
    component it came from. A background task calls `tick` on an interval, decaying the
    score again. While the score stays at or below the threshold the service reports
    itself ready.

    Failures that are part of regular protocol flow (invalid grants, rejected
    tokens) are never counted.
    """

    def __init__(self, health_threshold: int = 100, decay: int = 1) -> None:
        self._score = 0
        self._threshold = health_threshold
        self._decay = decay
        self._last_failure: Optional[str] = None
        self._failures: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def womp(self, source: str = "unknown", weight: int = 1) -> int:
        async with self._lock:
            self._score += weight
            self._last_failure = source
            self._failures[source] = self._failures.get(source, 0) + 1
            return self._score

    async def tick(self) -> None:
        async with self._lock:
            self._score = max(0, self._score - self._decay)

    async def is_healthy(self) -> bool:
        async with self._lock:
            return self._score <= self._threshold

    async def snapshot(self) -> HealthSnapshot:
        async with self._lock:
            return HealthSnapshot(
                score=self._score,
                threshold=self._threshold,
                healthy=self._score <= self._threshold,
                last_failure=self._last_failure,
                failures=dict(self._failures),
            )
