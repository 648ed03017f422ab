"""Tests for ollo.core.progress."""

import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest

from conftest import settle
from ollo.api.models import GenerateRequest
from ollo.core.progress import (
    PROGRESS_CAP,
    ProgressPolicy,
    ProgressTicker,
    asymptotic_progress,
    elapsed_since,
    estimate_progress,
    filled_segments,
    format_remaining,
    linear_progress,
    remaining_label,
)
from ollo.core.queue import GenerationQueueManager


class TestCurves:
    """Tests for the linear and asymptotic curves."""

    def test_linear_midpoint(self):
        assert linear_progress(15, 30) == pytest.approx(50.0)

    def test_linear_capped_at_estimate(self):
        assert linear_progress(30, 30) == PROGRESS_CAP
        assert linear_progress(300, 30) == PROGRESS_CAP

    def test_asymptotic_at_time_constant(self):
        # elapsed == 0.7 * estimated gives 1 - 1/e
        assert asymptotic_progress(21, 30) == pytest.approx(100 * (1 - math.exp(-1)))
        assert asymptotic_progress(21, 30) == pytest.approx(63.2, abs=0.1)

    def test_asymptotic_capped(self):
        assert asymptotic_progress(1000, 30) == PROGRESS_CAP

    @pytest.mark.parametrize("curve", [linear_progress, asymptotic_progress])
    def test_zero_elapsed_is_zero(self, curve):
        assert curve(0, 30) == 0.0

    @pytest.mark.parametrize("curve", [linear_progress, asymptotic_progress])
    def test_negative_elapsed_clamped(self, curve):
        assert curve(-5, 30) == 0.0

    @pytest.mark.parametrize("curve", [linear_progress, asymptotic_progress])
    def test_non_positive_estimate_returns_cap(self, curve):
        assert curve(1, 0) == PROGRESS_CAP

    @pytest.mark.parametrize("curve", [linear_progress, asymptotic_progress])
    def test_monotonic(self, curve):
        values = [curve(t / 2, 10) for t in range(60)]
        assert values == sorted(values)
        assert max(values) <= PROGRESS_CAP


class TestEstimateProgress:
    def test_completed_is_100(self):
        assert estimate_progress("completed", 0, 30) == 100.0

    def test_queued_is_zero(self):
        assert estimate_progress("queued", 50, 30) == 0.0

    def test_generating_never_reaches_100(self):
        for policy in ProgressPolicy:
            assert estimate_progress("generating", 10_000, 30, policy) == PROGRESS_CAP

    def test_policy_accepts_string(self):
        assert estimate_progress("generating", 21, 30, "asymptotic") == pytest.approx(
            asymptotic_progress(21, 30)
        )

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            estimate_progress("generating", 1, 30, "cubic")


class TestLabels:
    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (0.4, "<1s"),
            (1, "1s"),
            (12.2, "13s"),
            (59.5, "60s"),
            (60, "1m 0s"),
            (65, "1m 5s"),
            (125.5, "2m 6s"),
        ],
    )
    def test_format_remaining(self, seconds, expected):
        assert format_remaining(seconds) == expected

    def test_label_counts_down(self):
        assert remaining_label(10, 30) == "~20s"

    def test_label_after_estimate(self):
        assert remaining_label(30, 30) == "Almost done..."
        assert remaining_label(45, 30) == "Almost done..."

    @pytest.mark.parametrize(
        "progress,expected", [(0, 0), (4.9, 0), (50, 10), (96, 19), (100, 20)]
    )
    def test_filled_segments(self, progress, expected):
        assert filled_segments(progress) == expected

    def test_elapsed_since(self):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert elapsed_since(start, start + timedelta(seconds=12.5)) == 12.5


class TestProgressTicker:
    """Tests for ProgressTicker against a real queue manager."""

    def test_samples_while_generating_and_stops_on_success(self, registry, fake_generate):
        async def scenario():
            manager = GenerationQueueManager(fake_generate, registry)
            gate = fake_generate.gate("tick")
            samples = []

            manager.enqueue(GenerateRequest(prompt="tick", model="slow/model"), "job-1")
            await settle()
            ticker = ProgressTicker(manager, "job-1", samples.append, interval=0.01)
            task = ticker.start()
            await asyncio.sleep(0.05)
            assert ticker.running

            gate.set()
            await manager.wait_idle()
            await asyncio.wait_for(task, timeout=1)
            return samples, ticker

        samples, ticker = asyncio.run(scenario())
        assert len(samples) >= 2
        assert all(s.job_id == "job-1" for s in samples)
        assert all(0 <= s.progress < 95 for s in samples)
        assert [s.progress for s in samples] == sorted(s.progress for s in samples)
        assert samples[0].label.startswith("~")
        assert not ticker.running

    def test_stops_on_failure(self, registry, fake_generate):
        async def scenario():
            manager = GenerationQueueManager(fake_generate, registry)
            gate = fake_generate.gate("doomed")
            fake_generate.responses["doomed"] = RuntimeError("boom")

            manager.enqueue(GenerateRequest(prompt="doomed", model="fast/model"), "job-1")
            await settle()
            ticker = ProgressTicker(manager, "job-1", lambda sample: None, interval=0.01)
            task = ticker.start()
            gate.set()
            await manager.wait_idle()
            await asyncio.wait_for(task, timeout=1)
            return manager.get("job-1")

        job = asyncio.run(scenario())
        assert job.status == "failed"

    def test_no_sample_for_queued_or_missing_job(self, registry, fake_generate):
        manager = GenerationQueueManager(fake_generate, registry)
        assert ProgressTicker(manager, "missing", lambda sample: None).sample() is None

    def test_stop_cancels(self, registry, fake_generate):
        async def scenario():
            manager = GenerationQueueManager(fake_generate, registry)
            fake_generate.gate("slow")
            manager.enqueue(GenerateRequest(prompt="slow", model="slow/model"), "job-1")
            await settle()
            ticker = ProgressTicker(manager, "job-1", lambda sample: None, interval=0.01)
            ticker.start()
            await asyncio.sleep(0.03)
            ticker.stop()
            running = ticker.running
            manager.dismiss("job-1")
            fake_generate.gates["slow"].set()
            await manager.wait_idle()
            return running

        assert asyncio.run(scenario()) is False
