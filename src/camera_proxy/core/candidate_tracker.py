#!/usr/bin/env python3
"""
Candidate Stability Tracker
Temporal and draw-usage statistics per (shader, slot, register, layout)
candidate, deterministic scoring and best-candidate selection
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .matrix_bank import MatrixSlot
from .matrix_math import mean_abs_delta
from .structural_classifier import LayoutKind

logger = logging.getLogger(__name__)

SMOOTH_DELTA_THRESHOLD = 0.15
UNSTABLE_SCORE = -1.0

# Score weights
DRAW_CALL_WEIGHT = 2.2
FRAME_WITH_DRAW_WEIGHT = 1.0
CONSECUTIVE_WEIGHT = 0.9
SEEN_UPDATE_WEIGHT = 0.04
SMOOTH_WEIGHT = 0.5
DELTA_PENALTY = 2.0


@dataclass(frozen=True)
class CandidateKey:
    """Identity of a candidate binding"""
    shader_key: int
    slot: MatrixSlot
    base_register: int
    layout: LayoutKind

    @property
    def row_count(self) -> int:
        return self.layout.row_count

    @property
    def transposed(self) -> bool:
        return self.layout.transposed

    @property
    def inverse_view(self) -> bool:
        return self.layout.inverse_view

    @property
    def end_register(self) -> int:
        return self.base_register + self.layout.row_count

    def describe(self) -> str:
        return (f"{self.slot.value}@c{self.base_register} shader=0x{self.shader_key:x} "
                f"layout={self.layout.name}")


@dataclass
class CandidateStats:
    """Evidence accumulated for one candidate"""
    first_seen_order: int
    seen_updates: int = 0
    frames_seen: int = 0
    consecutive_frames: int = 0
    best_consecutive_frames: int = 0
    draw_calls: int = 0
    frames_with_draw: int = 0
    average_delta: float = 0.0
    delta_samples: int = 0
    smooth_transition_count: int = 0
    average_fov: float = 0.0
    fov_samples: int = 0
    last_matrix: Optional[np.ndarray] = None
    last_seen_frame: int = -1
    last_draw_frame: int = -1
    perspective_fallback: bool = False
    live: bool = True


@dataclass(frozen=True)
class CandidateReport:
    """Read-only view of a candidate for diagnostics"""
    key: CandidateKey
    stats: CandidateStats
    stable: bool
    score: float


def passes_temporal_stability(stats: CandidateStats, min_frames_seen: int,
                              min_consecutive_frames: int) -> bool:
    return (stats.frames_seen >= min_frames_seen
            and stats.best_consecutive_frames >= min_consecutive_frames)


def raw_score(stats: CandidateStats) -> float:
    return (stats.draw_calls * DRAW_CALL_WEIGHT
            + stats.frames_with_draw * FRAME_WITH_DRAW_WEIGHT
            + stats.best_consecutive_frames * CONSECUTIVE_WEIGHT
            + stats.seen_updates * SEEN_UPDATE_WEIGHT
            + stats.smooth_transition_count * SMOOTH_WEIGHT
            - stats.average_delta * DELTA_PENALTY)


class CandidateStabilityTracker:
    """
    Candidate table for all shaders

    Touched only from the thread delivering write/draw events. Frames are
    supplied by the caller so nothing here depends on wall-clock time.
    """

    def __init__(self, min_frames_seen: int = 12, min_consecutive_frames: int = 4,
                 smooth_threshold: float = SMOOTH_DELTA_THRESHOLD):
        self.min_frames_seen = min_frames_seen
        self.min_consecutive_frames = min_consecutive_frames
        self.smooth_threshold = smooth_threshold

        self._stats: Dict[CandidateKey, CandidateStats] = {}
        # (shader, slot) -> keys in creation order
        self._by_slot: Dict[Tuple[int, MatrixSlot], List[CandidateKey]] = {}
        self._by_shader: Dict[int, List[CandidateKey]] = {}
        self._created = 0

    def __len__(self) -> int:
        return len(self._stats)

    def __contains__(self, key: CandidateKey) -> bool:
        return key in self._stats

    def stats(self, key: CandidateKey) -> Optional[CandidateStats]:
        return self._stats.get(key)

    def _create(self, key: CandidateKey) -> CandidateStats:
        stats = CandidateStats(first_seen_order=self._created)
        self._created += 1
        self._stats[key] = stats
        self._by_slot.setdefault((key.shader_key, key.slot), []).append(key)
        self._by_shader.setdefault(key.shader_key, []).append(key)
        logger.debug(f"New candidate {key.describe()}")
        return stats

    def observe_candidate(self, key: CandidateKey, matrix: np.ndarray, frame: int,
                          fov: Optional[float] = None,
                          perspective_fallback: bool = False) -> CandidateStats:
        """Record one structural match of a candidate during frame `frame`"""
        stats = self._stats.get(key)
        if stats is None:
            stats = self._create(key)

        stats.seen_updates += 1
        first_this_frame = stats.last_seen_frame != frame

        delta = None
        if stats.last_matrix is not None:
            delta = mean_abs_delta(matrix, stats.last_matrix)
            stats.delta_samples += 1
            stats.average_delta += (delta - stats.average_delta) / stats.delta_samples

        if first_this_frame:
            stats.frames_seen += 1
            if stats.last_seen_frame == frame - 1:
                stats.consecutive_frames += 1
            else:
                stats.consecutive_frames = 1
            stats.best_consecutive_frames = max(stats.best_consecutive_frames,
                                                stats.consecutive_frames)
            if delta is not None and delta < self.smooth_threshold:
                stats.smooth_transition_count += 1
            stats.last_seen_frame = frame

        if fov is not None:
            stats.fov_samples += 1
            stats.average_fov += (fov - stats.average_fov) / stats.fov_samples

        stats.last_matrix = np.array(matrix, dtype=np.float32).reshape(4, 4)
        stats.perspective_fallback = perspective_fallback
        stats.live = True
        return stats

    def register_draw(self, key: CandidateKey, frame: int):
        stats = self._stats.get(key)
        if stats is None:
            return
        stats.draw_calls += 1
        if stats.last_draw_frame != frame:
            stats.frames_with_draw += 1
            stats.last_draw_frame = frame

    def register_shader_draw(self, shader_key: int, frame: int) -> List[MatrixSlot]:
        """Credit a draw to every live candidate of a shader; returns the slots touched"""
        slots = []
        for key in self._by_shader.get(shader_key, ()):
            stats = self._stats[key]
            if not stats.live:
                continue
            self.register_draw(key, frame)
            if key.slot not in slots:
                slots.append(key.slot)
        return slots

    def mark_stale(self, shader_key: int, start_register: int, end_register: int,
                   keep: set) -> int:
        """
        Drop the live flag of candidates whose window was overwritten

        A candidate is stale when a write overlapped its registers and the
        new contents no longer matched it.
        """
        stale = 0
        for key in self._by_shader.get(shader_key, ()):
            if key in keep:
                continue
            if key.base_register < end_register and key.end_register > start_register:
                stats = self._stats[key]
                if stats.live:
                    stats.live = False
                    stale += 1
        return stale

    def passes_temporal_stability(self, stats: CandidateStats) -> bool:
        return passes_temporal_stability(stats, self.min_frames_seen, self.min_consecutive_frames)

    def score(self, stats: CandidateStats) -> float:
        """Promotion score, UNSTABLE_SCORE when the stability gate fails"""
        if not self.passes_temporal_stability(stats):
            return UNSTABLE_SCORE
        return raw_score(stats)

    def candidates(self, shader_key: int, slot: MatrixSlot) -> List[CandidateKey]:
        return list(self._by_slot.get((shader_key, slot), ()))

    def _ranking_key(self, key: CandidateKey):
        stats = self._stats[key]
        return (-raw_score(stats), key.base_register, stats.first_seen_order)

    def select_best(self, shader_key: int, slot: MatrixSlot,
                    pinned_base: Optional[int] = None) -> Optional[CandidateKey]:
        """
        Highest-scoring stable candidate for (shader, slot)

        Ties go to the lowest base register, then to the earliest candidate.
        With a pinned base, candidates at any other register are excluded.
        """
        eligible = []
        for key in self._by_slot.get((shader_key, slot), ()):
            if pinned_base is not None and key.base_register != pinned_base:
                continue
            if self.passes_temporal_stability(self._stats[key]):
                eligible.append(key)
        if not eligible:
            return None
        return min(eligible, key=self._ranking_key)

    def reports(self, shader_key: int, slot: MatrixSlot) -> List[CandidateReport]:
        """Candidates in selection order, stable ones first"""
        keys = self._by_slot.get((shader_key, slot), ())
        reports = []
        for key in keys:
            stats = self._stats[key]
            stable = self.passes_temporal_stability(stats)
            reports.append(CandidateReport(key=key, stats=stats, stable=stable,
                                           score=raw_score(stats) if stable else UNSTABLE_SCORE))
        reports.sort(key=lambda r: (not r.stable, -r.score if r.stable else 0.0,
                                    r.key.base_register, r.stats.first_seen_order))
        return reports

    def clear(self, shader_key: Optional[int] = None):
        """Forget candidates for one shader, or all of them"""
        if shader_key is None:
            self._stats.clear()
            self._by_slot.clear()
            self._by_shader.clear()
            return
        for key in self._by_shader.pop(shader_key, []):
            self._stats.pop(key, None)
        for slot_key in [k for k in self._by_slot if k[0] == shader_key]:
            del self._by_slot[slot_key]
