"""Progress estimation for in-flight generations.

The generation API offers no server push, so progress is estimated on the
client from the time elapsed since a job started and the model's estimated
duration.  Two curves are available as a pluggable policy:

- **linear**: ``min(95, 100 * elapsed / estimated)``
- **asymptotic**: ``min(95, 100 * (1 - exp(-elapsed / (0.7 * estimated))))``

Both are capped at 95 while a job is generating.  Only the explicit
``completed`` signal moves progress to 100.

:class:`ProgressTicker` samples a job on a fixed period (100 ms by default)
while it is generating and stops as soon as the job changes status or
disappears from the queue.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from .config import config

if TYPE_CHECKING:
    from .queue import GenerationQueueManager

logger = logging.getLogger(__name__)

PROGRESS_CAP = 95.0
ASYMPTOTIC_TIME_CONSTANT = 0.7
TOTAL_SEGMENTS = 20


class ProgressPolicy(str, Enum):
    """Progress curve used for display."""

    LINEAR = "linear"
    ASYMPTOTIC = "asymptotic"


def linear_progress(elapsed: float, estimated: float) -> float:
    """Linear progress capped at 95."""
    elapsed = max(0.0, elapsed)
    if estimated <= 0:
        return PROGRESS_CAP
    return min(PROGRESS_CAP, 100.0 * elapsed / estimated)


def asymptotic_progress(elapsed: float, estimated: float) -> float:
    """Exponential approach towards 100, capped at 95."""
    elapsed = max(0.0, elapsed)
    if estimated <= 0:
        return PROGRESS_CAP
    raw = 1.0 - math.exp(-elapsed / (estimated * ASYMPTOTIC_TIME_CONSTANT))
    return min(PROGRESS_CAP, raw * 100.0)


_CURVES: dict[ProgressPolicy, Callable[[float, float], float]] = {
    ProgressPolicy.LINEAR: linear_progress,
    ProgressPolicy.ASYMPTOTIC: asymptotic_progress,
}


def estimate_progress(
    status: str,
    elapsed: float,
    estimated: float,
    policy: ProgressPolicy | str = ProgressPolicy.LINEAR,
) -> float:
    """Progress percentage for a job in ``status``.

    Args:
        status: ``queued``, ``generating``, ``completed`` or ``failed``
        elapsed: Seconds since the job started generating
        estimated: Estimated duration in seconds
        policy: Curve used while generating

    Returns:
        0 for queued jobs, the capped curve value while generating or failed,
        and 100 only for ``completed``
    """
    if status == "completed":
        return 100.0
    if status == "queued":
        return 0.0
    return _CURVES[ProgressPolicy(policy)](elapsed, estimated)


def remaining_seconds(elapsed: float, estimated: float) -> float:
    return max(0.0, estimated - elapsed)


def format_remaining(seconds: float) -> str:
    """Format a remaining duration as ``<1s``, ``12s`` or ``1m 5s``."""
    if seconds < 1:
        return "<1s"
    if seconds < 60:
        return f"{math.ceil(seconds)}s"
    minutes = math.floor(seconds / 60)
    secs = math.ceil(seconds % 60)
    return f"{minutes}m {secs}s"


def remaining_label(elapsed: float, estimated: float) -> str:
    """Text shown under the progress bar."""
    remaining = remaining_seconds(elapsed, estimated)
    if remaining > 0:
        return f"~{format_remaining(remaining)}"
    return "Almost done..."


def filled_segments(progress: float, total: int = TOTAL_SEGMENTS) -> int:
    """Number of lit segments in a segmented progress bar."""
    return math.floor(progress / 100 * total)


def elapsed_since(started_at: datetime, now: datetime | None = None) -> float:
    """Seconds between ``started_at`` and ``now`` (UTC)."""
    now = now or datetime.now(timezone.utc)
    return (now - started_at).total_seconds()


@dataclass(frozen=True)
class ProgressSample:
    """One progress reading for display."""

    job_id: str
    progress: float
    remaining: float
    label: str


class ProgressTicker:
    """Sample a generating job's progress on a fixed period.

    The ticker reads the job from the queue manager on every tick and stops
    by itself once the job is no longer ``generating`` (success removes it,
    failure changes its status).  ``stop()`` ends it early, e.g. when the
    view showing the job is torn down.

    Args:
        manager: Queue manager owning the job
        job_id: Job to follow
        on_sample: Callback receiving each :class:`ProgressSample`
        policy: Progress curve (config ``progress_policy`` if None)
        interval: Sampling period in seconds (config ``progress_tick_seconds``
            if None)
    """

    def __init__(
        self,
        manager: GenerationQueueManager,
        job_id: str,
        on_sample: Callable[[ProgressSample], None],
        policy: ProgressPolicy | str | None = None,
        interval: float | None = None,
    ) -> None:
        self.manager = manager
        self.job_id = job_id
        self.on_sample = on_sample
        self.policy = ProgressPolicy(policy or config.progress_policy)
        self.interval = interval if interval is not None else config.progress_tick_seconds
        self._task: asyncio.Task | None = None

    def sample(self) -> ProgressSample | None:
        """Compute the current sample, or None if the job is not generating."""
        job = self.manager.get(self.job_id)
        if job is None or job.status != "generating" or job.started_at is None:
            return None

        elapsed = elapsed_since(job.started_at)
        estimated = job.estimated_duration or config.default_generation_time
        return ProgressSample(
            job_id=self.job_id,
            progress=estimate_progress(job.status, elapsed, estimated, self.policy),
            remaining=remaining_seconds(elapsed, estimated),
            label=remaining_label(elapsed, estimated),
        )

    async def run(self) -> None:
        """Emit samples until the job stops generating."""
        while True:
            sample = self.sample()
            if sample is None:
                logger.debug(f"Progress ticker for {self.job_id} stopped")
                return
            self.on_sample(sample)
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        """Run the ticker as a background task on the current loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
