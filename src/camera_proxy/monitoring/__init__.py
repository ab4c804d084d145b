"""
Monitoring module for engine performance tracking.

Frame-time statistics, per-event processing cost against the frame budget,
and process memory sampling.
"""

from .performance_monitor import (
    EventBudget,
    FrameTimeStats,
    FrameTimeSummary,
    PerformanceMonitor,
)

__all__ = [
    'EventBudget',
    'FrameTimeStats',
    'FrameTimeSummary',
    'PerformanceMonitor',
]
