#!/usr/bin/env python3
"""
Unit tests for candidate stability tracking and selection
"""

import pytest
import numpy as np

from camera_proxy.core.candidate_tracker import (
    UNSTABLE_SCORE,
    CandidateKey,
    CandidateStabilityTracker,
    raw_score,
)
from camera_proxy.core.matrix_bank import MatrixSlot
from camera_proxy.core.structural_classifier import LayoutKind
from tests.fixtures.matrix_fixtures import view_matrix

SHADER = 0x1000


def view_key(base, layout=LayoutKind.ROWS4_DIRECT, shader=SHADER):
    return CandidateKey(shader, MatrixSlot.VIEW, base, layout)


def observe_frames(tracker, key, frames, matrix=None, draw=True):
    matrix = view_matrix() if matrix is None else matrix
    stats = None
    for frame in frames:
        stats = tracker.observe_candidate(key, matrix, frame)
        if draw:
            tracker.register_draw(key, frame)
    return stats


@pytest.mark.unit
class TestTemporalStability:
    """Test the frames-seen and streak gate"""

    def test_gate_exact_and_one_short(self):
        tracker = CandidateStabilityTracker(min_frames_seen=4, min_consecutive_frames=4)
        key = view_key(4)

        stats = observe_frames(tracker, key, range(3))
        assert not tracker.passes_temporal_stability(stats)
        assert tracker.score(stats) == UNSTABLE_SCORE

        stats = observe_frames(tracker, key, [3])
        assert tracker.passes_temporal_stability(stats)

    def test_gap_resets_streak(self):
        tracker = CandidateStabilityTracker(min_frames_seen=4, min_consecutive_frames=3)
        stats = observe_frames(tracker, view_key(4), [0, 1, 3, 4, 6])
        assert stats.frames_seen == 5
        assert stats.consecutive_frames == 1
        assert stats.best_consecutive_frames == 2
        assert not tracker.passes_temporal_stability(stats)

    def test_repeat_in_frame_counts_once(self):
        tracker = CandidateStabilityTracker()
        key = view_key(4)
        for _ in range(3):
            stats = tracker.observe_candidate(key, view_matrix(), 0)
        assert stats.frames_seen == 1
        assert stats.seen_updates == 3


@pytest.mark.unit
class TestScoring:
    """Test the deterministic score"""

    def test_score_formula(self):
        tracker = CandidateStabilityTracker(min_frames_seen=4, min_consecutive_frames=4)
        stats = observe_frames(tracker, view_key(4), range(4))

        assert stats.draw_calls == 4
        assert stats.frames_with_draw == 4
        assert stats.smooth_transition_count == 3
        assert stats.average_delta == 0.0
        expected = 4 * 2.2 + 4 * 1.0 + 4 * 0.9 + 4 * 0.04 + 3 * 0.5
        assert tracker.score(stats) == pytest.approx(expected)
        assert raw_score(stats) == pytest.approx(expected)

    def test_jitter_penalised(self):
        tracker = CandidateStabilityTracker(min_frames_seen=2, min_consecutive_frames=2)
        calm = observe_frames(tracker, view_key(4), range(4))
        jumpy = None
        for frame in range(4):
            jumpy = tracker.observe_candidate(view_key(8), view_matrix(translation=(frame * 5.0, 0, 0)), frame)
            tracker.register_draw(view_key(8), frame)

        assert jumpy.average_delta > 0
        assert jumpy.smooth_transition_count == 0
        assert tracker.score(jumpy) < tracker.score(calm)

    def test_draws_per_frame(self):
        tracker = CandidateStabilityTracker()
        key = view_key(4)
        tracker.observe_candidate(key, view_matrix(), 0)
        for _ in range(3):
            tracker.register_draw(key, 0)
        tracker.register_draw(key, 1)
        stats = tracker.stats(key)
        assert stats.draw_calls == 4
        assert stats.frames_with_draw == 2


@pytest.mark.unit
class TestSelection:
    """Test best-candidate selection"""

    def test_nothing_stable(self):
        tracker = CandidateStabilityTracker(min_frames_seen=4, min_consecutive_frames=4)
        observe_frames(tracker, view_key(4), range(2))
        assert tracker.select_best(SHADER, MatrixSlot.VIEW) is None

    def test_tie_prefers_lower_register(self):
        tracker = CandidateStabilityTracker(min_frames_seen=2, min_consecutive_frames=2)
        observe_frames(tracker, view_key(8), range(3))
        observe_frames(tracker, view_key(4), range(3))
        assert tracker.select_best(SHADER, MatrixSlot.VIEW).base_register == 4

    def test_tie_same_register_prefers_first_seen(self):
        tracker = CandidateStabilityTracker(min_frames_seen=2, min_consecutive_frames=2)
        observe_frames(tracker, view_key(4, LayoutKind.ROWS3_DIRECT), range(3))
        observe_frames(tracker, view_key(4), range(3))
        assert tracker.select_best(SHADER, MatrixSlot.VIEW).layout is LayoutKind.ROWS3_DIRECT

    def test_higher_score_wins(self):
        tracker = CandidateStabilityTracker(min_frames_seen=2, min_consecutive_frames=2)
        observe_frames(tracker, view_key(4), range(3))
        observe_frames(tracker, view_key(8), range(3))
        tracker.register_draw(view_key(8), 2)
        assert tracker.select_best(SHADER, MatrixSlot.VIEW).base_register == 8

    def test_pinned_base_excludes_others(self):
        tracker = CandidateStabilityTracker(min_frames_seen=2, min_consecutive_frames=2)
        observe_frames(tracker, view_key(4), range(3))
        observe_frames(tracker, view_key(8), range(3))
        for _ in range(10):
            tracker.register_draw(view_key(8), 2)

        assert tracker.select_best(SHADER, MatrixSlot.VIEW, pinned_base=4).base_register == 4
        assert tracker.select_best(SHADER, MatrixSlot.VIEW, pinned_base=12) is None

    def test_slots_and_shaders_isolated(self):
        tracker = CandidateStabilityTracker(min_frames_seen=1, min_consecutive_frames=1)
        observe_frames(tracker, view_key(4, shader=1), range(2))
        assert tracker.select_best(2, MatrixSlot.VIEW) is None
        assert tracker.select_best(1, MatrixSlot.PROJECTION) is None

    def test_reports_order(self):
        tracker = CandidateStabilityTracker(min_frames_seen=2, min_consecutive_frames=2)
        observe_frames(tracker, view_key(12), range(1))
        observe_frames(tracker, view_key(8), range(3))
        reports = tracker.reports(SHADER, MatrixSlot.VIEW)
        assert [r.key.base_register for r in reports] == [8, 12]
        assert reports[0].stable and not reports[1].stable
        assert reports[1].score == UNSTABLE_SCORE


@pytest.mark.unit
class TestLiveness:
    """Test stale marking and draw attribution"""

    def test_stale_candidates_get_no_draws(self):
        tracker = CandidateStabilityTracker()
        key4, key8 = view_key(4), view_key(8)
        tracker.observe_candidate(key4, view_matrix(), 0)
        tracker.observe_candidate(key8, view_matrix(), 0)

        assert tracker.mark_stale(SHADER, 6, 10, keep=set()) == 2
        assert tracker.mark_stale(SHADER, 6, 10, keep=set()) == 0
        assert tracker.register_shader_draw(SHADER, 0) == []

        tracker.observe_candidate(key8, view_matrix(), 1)
        assert tracker.register_shader_draw(SHADER, 1) == [MatrixSlot.VIEW]
        assert tracker.stats(key8).draw_calls == 1
        assert tracker.stats(key4).draw_calls == 0

    def test_keep_set_preserved(self):
        tracker = CandidateStabilityTracker()
        key = view_key(4)
        tracker.observe_candidate(key, view_matrix(), 0)
        tracker.mark_stale(SHADER, 4, 8, keep={key})
        assert tracker.stats(key).live

    def test_clear_one_shader(self):
        tracker = CandidateStabilityTracker()
        tracker.observe_candidate(view_key(4, shader=1), view_matrix(), 0)
        tracker.observe_candidate(view_key(4, shader=2), view_matrix(), 0)
        tracker.clear(1)
        assert len(tracker) == 1
        assert tracker.candidates(1, MatrixSlot.VIEW) == []
        tracker.clear()
        assert len(tracker) == 0

    def test_last_matrix_is_copy(self):
        tracker = CandidateStabilityTracker()
        matrix = view_matrix()
        stats = tracker.observe_candidate(view_key(4), matrix, 0)
        matrix[0, 0] = 99.0
        assert stats.last_matrix[0, 0] != 99.0
        assert stats.last_matrix.dtype == np.float32
