#!/usr/bin/env python3
"""
Tests for engine performance monitoring
"""

import logging

import pytest

from camera_proxy.monitoring.performance_monitor import FrameTimeStats, PerformanceMonitor


@pytest.mark.unit
class TestFrameTimeStats:
    """Test the frame time ring buffer"""

    def test_empty_summary(self):
        summary = FrameTimeStats().summary()
        assert summary.samples == 0
        assert summary.avg_fps == 0.0

    def test_history_is_bounded(self):
        stats = FrameTimeStats(history_size=3)
        for ms in (10.0, 20.0, 30.0, 40.0):
            stats.add_frame_time(ms)
        summary = stats.summary()
        assert summary.samples == 3
        assert stats.total_samples == 4
        assert summary.min_ms == 20.0
        assert summary.max_ms == 40.0
        assert summary.avg_ms == pytest.approx(30.0)
        assert summary.max_fps == pytest.approx(50.0)
        assert summary.min_fps == pytest.approx(25.0)


@pytest.mark.unit
class TestPerformanceMonitor:
    """Test event budgets and status"""

    def test_first_frame_only_primes(self):
        monitor = PerformanceMonitor()
        monitor.mark_frame(now=1.0)
        assert monitor.frame_stats.summary().samples == 0
        monitor.mark_frame(now=1.016)
        assert monitor.frame_stats.summary().avg_ms == pytest.approx(16.0)

    def test_budget_overruns(self, caplog):
        monitor = PerformanceMonitor(frame_budget_ms=1.0)
        with caplog.at_level(logging.WARNING):
            monitor.record_event("constant_write", 0.5)
            monitor.record_event("constant_write", 2.0)
            monitor.record_event("constant_write", 3.0)

        budget = monitor.events["constant_write"]
        assert budget.count == 3
        assert budget.over_budget == 2
        assert budget.max_ms == 3.0
        assert budget.avg_ms == pytest.approx(5.5 / 3)
        # Only the first overrun of a run of 100 is logged
        assert len([r for r in caplog.records if "constant_write took" in r.getMessage()]) == 1

    def test_status(self):
        monitor = PerformanceMonitor()
        monitor.record_event("draw", 0.1)
        status = monitor.get_status()
        assert status["events"]["draw"]["count"] == 1
        assert status["frame_budget_ms"] == 1.0
        assert status["process_memory_mb"] > 0
        assert "avg_fps" in status["frame_times"]
