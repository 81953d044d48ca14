"""
Tests for temporal smoothing of crop plans.

At 30 fps the default 1.5 s window is 45 frames.
"""

import math

import pytest

from portrait_crop.config import ReframeConfig
from portrait_crop.history import PlanHistory
from portrait_crop.models import AspectRatio, CropPlan, CropRegion, CutDecision, Rect
from portrait_crop.smoother import (
    TemporalSmoother,
    Transition,
    crop_class,
    plan_difference,
    plans_similar,
)

FPS = 30.0
CROP_WIDTH = 0.31640625


def single(cx, subject_count=1):
    return CropPlan.single(
        CropRegion(
            rect=Rect(x=cx - CROP_WIDTH / 2, y=0.0, width=CROP_WIDTH, height=1.0),
            target_aspect=AspectRatio(width=9, height=16),
        ),
        subject_count=subject_count,
    )


def stacked(top_x=0.0, bottom_x=0.5):
    def region(x):
        return CropRegion(
            rect=Rect(x=x, y=0.1, width=0.5, height=0.79),
            target_aspect=AspectRatio(width=9, height=8),
        )

    return CropPlan.stacked(region(top_x), region(bottom_x), subject_count=2)


NO_CUT = CutDecision(is_cut=False, similarity_score=0.95)
CUT = CutDecision(is_cut=True, similarity_score=0.1)


class TestPlanDifference:
    def test_identical(self):
        assert plan_difference(single(0.3), single(0.3)) == 0.0

    def test_percentage_of_frame(self):
        assert plan_difference(single(0.3), single(0.35)) == pytest.approx(5.0)

    def test_kind_mismatch_is_infinite(self):
        assert math.isinf(plan_difference(single(0.3), stacked()))

    def test_crop_class_mismatch_is_infinite(self):
        assert math.isinf(plan_difference(single(0.3, 1), single(0.3, 2)))

    def test_crowd_sizes_share_class(self):
        assert crop_class(4) == crop_class(7) == 4
        assert plan_difference(single(0.3, 4), single(0.3, 6)) == 0.0

    def test_stacked_uses_worst_region(self):
        assert plan_difference(stacked(0.0, 0.5), stacked(0.02, 0.42)) == pytest.approx(8.0)

    def test_threshold_inclusive(self):
        assert plans_similar(single(0.3), single(0.4), 10.0)
        assert not plans_similar(single(0.3), single(0.41), 10.0)


class TestHistoryMode:
    def test_first_frame_adopted(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        step = smoother.update(single(0.3), NO_CUT, 0)
        assert step.transition == Transition.INITIAL
        assert step.plan == single(0.3)

    def test_no_drift_under_static_input(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        plan = single(0.3)
        for i in range(300):
            step = smoother.update(single(0.3), NO_CUT, i)
            assert step.plan == plan

    def test_jitter_absorbed(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), NO_CUT, 0)
        for i, cx in enumerate([0.33, 0.27, 0.35, 0.25, 0.31], start=1):
            step = smoother.update(single(cx), NO_CUT, i)
            assert step.transition == Transition.ABSORBED
            assert step.plan == single(0.3)

    def test_promotion_after_window(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        assert smoother.smooth_frames == 45

        smoother.update(single(0.3), NO_CUT, 0)
        for i in range(1, 46):
            step = smoother.update(single(0.42), NO_CUT, i)
            assert step.plan == single(0.3), f"frame {i}"
            assert not step.changed

        step = smoother.update(single(0.42), NO_CUT, 46)
        assert step.transition == Transition.PROMOTED
        assert step.plan == single(0.42)
        assert smoother.state.pending_plan is None

    def test_mismatch_restarts_window(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), NO_CUT, 0)

        for i in range(1, 44):
            assert smoother.update(single(0.7), NO_CUT, i).plan == single(0.3)

        # A different candidate on frame 44 replaces the pending plan
        step = smoother.update(single(0.5), NO_CUT, 44)
        assert step.transition == Transition.PENDING_STARTED
        assert smoother.state.pending_since == 44

        for i in range(45, 89):
            assert smoother.update(single(0.5), NO_CUT, i).plan == single(0.3)

        step = smoother.update(single(0.5), NO_CUT, 89)
        assert step.transition == Transition.PROMOTED
        assert step.plan == single(0.5)

    def test_return_to_stable_drops_pending(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), NO_CUT, 0)
        smoother.update(single(0.7), NO_CUT, 1)
        assert smoother.state.pending_plan is not None

        step = smoother.update(single(0.3), NO_CUT, 2)
        assert step.transition == Transition.ABSORBED
        assert smoother.state.pending_plan is None

    def test_jittery_pending_still_promoted(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), NO_CUT, 0)
        step = None
        for i in range(1, 47):
            cx = 0.7 if i % 2 else 0.72
            step = smoother.update(single(cx), NO_CUT, i)
        assert step.transition == Transition.PROMOTED

    def test_subject_count_change_is_not_absorbed(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.5, 1), NO_CUT, 0)
        step = smoother.update(single(0.5, 2), NO_CUT, 1)
        assert step.transition == Transition.PENDING_STARTED
        assert step.plan == single(0.5, 1)


class TestCuts:
    def test_cut_adopts_candidate(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), NO_CUT, 0)
        smoother.update(single(0.7), NO_CUT, 1)

        step = smoother.update(stacked(), CUT, 2)
        assert step.transition == Transition.CUT
        assert step.plan == stacked()
        assert smoother.state.pending_plan is None
        assert len(smoother.state.history) == 1

    def test_bool_cut_accepted(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), False, 0)
        assert smoother.update(single(0.7), True, 1).plan == single(0.7)

    def test_cut_even_when_similar(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), NO_CUT, 0)
        step = smoother.update(single(0.31), CUT, 1)
        assert step.transition == Transition.CUT
        assert step.plan == single(0.31)


class TestModes:
    def test_simple_smoothing_adopts_immediately(self):
        smoother = TemporalSmoother(ReframeConfig(use_simple_smoothing=True), FPS)
        smoother.update(single(0.3), NO_CUT, 0)

        step = smoother.update(single(0.7), NO_CUT, 1)
        assert step.transition == Transition.IMMEDIATE
        assert step.plan == single(0.7)

    def test_simple_smoothing_still_absorbs_jitter(self):
        smoother = TemporalSmoother(ReframeConfig(use_simple_smoothing=True), FPS)
        smoother.update(single(0.3), NO_CUT, 0)
        assert smoother.update(single(0.33), NO_CUT, 1).plan == single(0.3)

    def test_zero_duration_disables_smoothing(self):
        smoother = TemporalSmoother(ReframeConfig(smooth_duration=0.0), FPS)
        assert smoother.smooth_frames == 0
        smoother.update(single(0.3), NO_CUT, 0)
        assert smoother.update(single(0.31), NO_CUT, 1).plan == single(0.31)

    def test_zero_percentage_disables_smoothing(self):
        smoother = TemporalSmoother(ReframeConfig(smooth_percentage=0.0), FPS)
        smoother.update(single(0.3), NO_CUT, 0)

        assert smoother.update(single(0.3), NO_CUT, 1).transition == Transition.ABSORBED
        assert smoother.update(single(0.305), NO_CUT, 2).plan == single(0.305)

    def test_reset(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        smoother.update(single(0.3), NO_CUT, 0)
        smoother.reset()
        assert smoother.stable_plan is None
        assert smoother.update(single(0.7), NO_CUT, 1).transition == Transition.INITIAL


class TestPlanHistory:
    def test_window_eviction(self):
        history = PlanHistory(window=1.0, capacity=100)
        for t in (0.0, 0.5, 1.0, 1.6):
            history.add(t, single(0.5))
        assert len(history) == 2
        assert history.oldest()[0] == 1.0
        assert history.span() == pytest.approx(0.6)

    def test_capacity(self):
        history = PlanHistory(window=100.0, capacity=3)
        for i in range(10):
            history.add(float(i), single(0.5))
        assert len(history) == 3
        assert history.latest()[0] == 9.0

    def test_smoother_history_records_candidates_since_cut(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        for i in range(10):
            smoother.update(single(0.3), NO_CUT, i)
        for i in range(10, 20):
            smoother.update(single(0.7), NO_CUT, i)

        history = smoother.state.history
        assert len(history) == 20
        assert history.oldest() == (0.0, single(0.3))
        assert history.latest()[1] == single(0.7)
        assert history.span() == pytest.approx(19 / FPS)
        assert smoother.stable_plan == single(0.3)

        smoother.update(single(0.5), CUT, 20)
        assert list(history) == [(20 / FPS, single(0.5))]

    def test_smoother_history_capacity(self):
        smoother = TemporalSmoother(ReframeConfig(), FPS)
        assert smoother.state.history.capacity == 46
        for i in range(200):
            smoother.update(single(0.3), NO_CUT, i)
        assert len(smoother.state.history) <= 46
