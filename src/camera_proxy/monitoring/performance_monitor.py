#!/usr/bin/env python3
"""
Performance Monitoring for the camera extraction engine
Tracks frame times, per-event processing cost against the frame budget,
and process memory
"""

import time
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

import psutil

FRAME_TIME_HISTORY = 120
OVERRUN_LOG_INTERVAL = 100


@dataclass
class FrameTimeSummary:
    """Frame time statistics over the history window"""
    samples: int
    avg_ms: float
    min_ms: float
    max_ms: float

    @property
    def avg_fps(self) -> float:
        return 1000.0 / self.avg_ms if self.avg_ms > 0 else 0.0

    @property
    def min_fps(self) -> float:
        return 1000.0 / self.max_ms if self.max_ms > 0 else 0.0

    @property
    def max_fps(self) -> float:
        return 1000.0 / self.min_ms if self.min_ms > 0 else 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "samples": self.samples,
            "avg_ms": self.avg_ms,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
            "avg_fps": self.avg_fps,
            "min_fps": self.min_fps,
            "max_fps": self.max_fps,
        }


class FrameTimeStats:
    """Ring buffer of recent frame times"""

    def __init__(self, history_size: int = FRAME_TIME_HISTORY):
        self.history: Deque[float] = deque(maxlen=history_size)
        self.total_samples = 0

    def add_frame_time(self, ms: float):
        self.history.append(ms)
        self.total_samples += 1

    def summary(self) -> FrameTimeSummary:
        if not self.history:
            return FrameTimeSummary(samples=0, avg_ms=0.0, min_ms=0.0, max_ms=0.0)
        return FrameTimeSummary(
            samples=len(self.history),
            avg_ms=sum(self.history) / len(self.history),
            min_ms=min(self.history),
            max_ms=max(self.history),
        )


@dataclass
class EventBudget:
    """Processing cost of one event type"""
    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    over_budget: int = 0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0


class PerformanceMonitor:
    """Low-overhead timing for the render-thread event handlers"""

    def __init__(self, frame_budget_ms: float = 1.0, history_size: int = FRAME_TIME_HISTORY):
        self.frame_budget_ms = frame_budget_ms
        self.frame_stats = FrameTimeStats(history_size)
        self.events: Dict[str, EventBudget] = {}
        self._last_frame_counter: Optional[float] = None
        self._process = psutil.Process()
        self.logger = logging.getLogger(__name__)

    def mark_frame(self, now: Optional[float] = None):
        """Record a frame boundary; the first call only primes the timer"""
        now = time.perf_counter() if now is None else now
        if self._last_frame_counter is not None:
            self.frame_stats.add_frame_time((now - self._last_frame_counter) * 1000.0)
        self._last_frame_counter = now

    def record_event(self, name: str, duration_ms: float):
        budget = self.events.setdefault(name, EventBudget())
        budget.count += 1
        budget.total_ms += duration_ms
        budget.max_ms = max(budget.max_ms, duration_ms)
        if duration_ms > self.frame_budget_ms:
            budget.over_budget += 1
            if budget.over_budget % OVERRUN_LOG_INTERVAL == 1:
                self.logger.warning(f"{name} took {duration_ms:.3f}ms "
                                    f"(budget {self.frame_budget_ms:.3f}ms, "
                                    f"{budget.over_budget} overruns)")

    def process_memory_mb(self) -> float:
        try:
            return self._process.memory_info().rss / (1024 ** 2)
        except (psutil.Error, OSError) as e:
            self.logger.debug(f"Could not read process memory: {e}")
            return 0.0

    def get_status(self) -> Dict[str, Any]:
        return {
            "frame_times": self.frame_stats.summary().to_dict(),
            "events": {
                name: {
                    "count": b.count,
                    "avg_ms": b.avg_ms,
                    "max_ms": b.max_ms,
                    "over_budget": b.over_budget,
                }
                for name, b in sorted(self.events.items())
            },
            "frame_budget_ms": self.frame_budget_ms,
            "process_memory_mb": self.process_memory_mb(),
        }
