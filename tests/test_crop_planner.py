"""
Tests for per-frame crop geometry.

Frames are 1920x1080 unless stated otherwise.
"""

import numpy as np
import pytest

from portrait_crop.config import ReframeConfig
from portrait_crop.crop_planner import CropPlanner, compute_candidate_plan
from portrait_crop.models import AspectRatio, Detection, ObjectKind, PlanKind, Rect

WIDTH, HEIGHT = 1920, 1080


def head(cx, cy=0.4, w=0.05, h=0.1, confidence=0.9):
    return Detection(
        label=ObjectKind.HEAD,
        confidence=confidence,
        bbox=Rect(x=cx - w / 2, y=cy - h / 2, width=w, height=h),
    )


def planner(**overrides):
    return CropPlanner(ReframeConfig(**overrides), WIDTH, HEIGHT)


class TestNoSubjects:
    def test_fallback_is_centered_three_by_four(self):
        plan = planner().plan([])

        assert plan.kind == PlanKind.SINGLE
        assert plan.subject_count == 0
        region = plan.top
        assert region.target_aspect == AspectRatio(width=3, height=4)
        assert region.rect.cx == pytest.approx(0.5)
        assert region.rect.height == pytest.approx(1.0)
        assert region.pixel_aspect(WIDTH, HEIGHT) == pytest.approx(3 / 4)

    def test_graphic_kept_whole(self):
        plan = planner(keep_graphic=True).plan([], is_graphic=True)

        assert plan.kind == PlanKind.RESIZE
        assert plan.top.rect == Rect(x=0.0, y=0.0, width=1.0, height=1.0)
        assert plan.top.target_aspect == AspectRatio(width=16, height=9)

    def test_graphic_ignored_without_keep_graphic(self):
        plan = planner().plan([], is_graphic=True)
        assert plan.kind == PlanKind.SINGLE
        assert plan.top.target_aspect == AspectRatio(width=3, height=4)

    def test_graphic_ignored_with_subjects(self):
        plan = planner(keep_graphic=True).plan([head(0.5)], is_graphic=True)
        assert plan.kind == PlanKind.SINGLE


class TestSingleSubject:
    def test_centered_on_subject(self):
        plan = planner().plan([head(0.5)])

        assert plan.kind == PlanKind.SINGLE
        assert plan.subject_count == 1
        region = plan.top
        assert region.rect.cx == pytest.approx(0.5)
        assert region.rect.height == pytest.approx(1.0)
        assert region.pixel_aspect(WIDTH, HEIGHT) == pytest.approx(9 / 16)

    def test_subject_at_edge_keeps_crop_inside(self):
        plan = planner().plan([head(0.03)])

        region = plan.top
        assert region.rect.x == pytest.approx(0.0)
        assert plan.is_inside_frame()
        assert region.rect.contains(head(0.03).bbox)

    def test_zoom_limits_crop_height(self):
        plan = planner(max_zoom_factor=2.0).plan([head(0.5, cy=0.5)])

        region = plan.top
        assert region.rect.height == pytest.approx(0.5)
        assert region.rect.cy == pytest.approx(0.5)
        assert region.pixel_aspect(WIDTH, HEIGHT) == pytest.approx(9 / 16)

    def test_single_aspect_override(self):
        config = ReframeConfig(single_aspect_ratio=AspectRatio(width=3, height=4))
        plan = CropPlanner(config, WIDTH, HEIGHT).plan([head(0.5)])
        assert plan.top.target_aspect == AspectRatio(width=3, height=4)
        assert plan.top.pixel_aspect(WIDTH, HEIGHT) == pytest.approx(3 / 4)


class TestTwoSubjects:
    def test_far_apart_stacked(self):
        plan = planner(use_stack_crop=True).plan([head(0.8), head(0.2)])

        assert plan.kind == PlanKind.STACKED
        assert plan.subject_count == 2
        # Left subject on top
        assert plan.top.rect.cx < plan.bottom.rect.cx
        for region in plan.regions:
            assert region.target_aspect == AspectRatio(width=9, height=8)
            assert region.pixel_aspect(WIDTH, HEIGHT) == pytest.approx(9 / 8)
        assert plan.combined_aspect() == AspectRatio(width=9, height=16)

    def test_far_apart_without_stacking_follows_largest(self):
        plan = planner().plan([head(0.2), head(0.8, w=0.08, h=0.15)])

        assert plan.kind == PlanKind.SINGLE
        assert plan.top.rect.cx == pytest.approx(0.8)

    def test_close_subjects_share_crop(self):
        first, second = head(0.45), head(0.55)
        plan = planner(use_stack_crop=True).plan([first, second])

        assert plan.kind == PlanKind.SINGLE
        assert plan.top.rect.contains(first.bbox)
        assert plan.top.rect.contains(second.bbox)

    def test_close_threshold_is_configurable(self):
        plan = planner(use_stack_crop=True, close_threshold=0.7).plan([head(0.2), head(0.8)])
        assert plan.kind == PlanKind.SINGLE


class TestThreeSubjects:
    def _trio(self):
        return [
            Detection(label=ObjectKind.HEAD, confidence=0.9,
                      bbox=Rect(x=0.15, y=0.3, width=0.1, height=0.4)),
            Detection(label=ObjectKind.HEAD, confidence=0.9,
                      bbox=Rect(x=0.45, y=0.3, width=0.1, height=0.41)),
            Detection(label=ObjectKind.HEAD, confidence=0.9,
                      bbox=Rect(x=0.75, y=0.3, width=0.1, height=0.39)),
        ]

    def test_even_trio_layout(self):
        plan = planner(use_stack_crop=True).plan(self._trio())

        assert plan.kind == PlanKind.STACKED
        assert plan.subject_count == 3
        assert plan.top.target_aspect == AspectRatio(width=9, height=6)
        assert plan.bottom.target_aspect == AspectRatio(width=9, height=10)
        assert plan.top.pixel_aspect(WIDTH, HEIGHT) == pytest.approx(9 / 6)
        assert plan.bottom.pixel_aspect(WIDTH, HEIGHT) == pytest.approx(9 / 10)
        assert plan.top.rect.height == pytest.approx(0.8)
        assert plan.bottom.rect.height == pytest.approx(0.8)
        assert plan.combined_aspect() == AspectRatio(width=9, height=16)
        # The pair is framed on top, the third subject below
        assert plan.bottom.rect.cx == pytest.approx(0.8, abs=0.01)

    def test_even_trio_needs_stacking(self):
        plan = planner().plan(self._trio())
        assert plan.kind == PlanKind.SINGLE
        assert plan.subject_count == 3

    def test_uneven_sizes_fall_back_to_two_largest(self):
        dets = [head(0.2, w=0.2, h=0.4), head(0.5, w=0.02, h=0.04), head(0.8, w=0.15, h=0.3)]
        plan = planner(use_stack_crop=True).plan(dets)

        assert plan.kind == PlanKind.STACKED
        assert plan.subject_count == 3
        assert plan.top.target_aspect == AspectRatio(width=9, height=8)
        assert plan.top.rect.cx < 0.5 < plan.bottom.rect.cx


class TestGroups:
    def test_close_group_single(self):
        dets = [head(0.4), head(0.45), head(0.5), head(0.55)]
        plan = planner(use_stack_crop=True).plan(dets)

        assert plan.kind == PlanKind.SINGLE
        assert plan.subject_count == 4
        for det in dets:
            assert plan.top.rect.contains(det.bbox)

    def test_spread_group_stacks_outermost(self):
        dets = [head(0.5), head(0.1), head(0.9), head(0.3), head(0.7)]
        plan = planner(use_stack_crop=True).plan(dets)

        assert plan.kind == PlanKind.STACKED
        assert plan.subject_count == 5
        assert plan.top.rect.x == pytest.approx(0.0)
        assert plan.bottom.rect.x2 == pytest.approx(1.0)

    def test_crowd_centers_on_largest(self):
        dets = [head(0.1), head(0.25), head(0.4), head(0.55), head(0.85)]
        dets.append(head(0.7, w=0.1, h=0.2))
        plan = planner(use_stack_crop=True).plan(dets)

        assert plan.kind == PlanKind.SINGLE
        assert plan.subject_count == 6
        assert plan.top.rect.cx == pytest.approx(0.7)


class TestGeometryProperties:
    """Every plan lies inside the frame and composes to the output ratio."""

    @pytest.mark.parametrize("seed", range(5))
    def test_random_detections(self, seed):
        rng = np.random.default_rng(seed)
        plan_of = planner(use_stack_crop=True).plan

        for _ in range(40):
            count = int(rng.integers(0, 8))
            dets = []
            for _ in range(count):
                w, h = rng.uniform(0.01, 0.5, size=2)
                x, y = rng.uniform(0.0, 1.0 - w), rng.uniform(0.0, 1.0 - h)
                dets.append(Detection(
                    label=ObjectKind.HEAD,
                    confidence=0.9,
                    bbox=Rect(x=x, y=y, width=w, height=h),
                ))

            plan = plan_of(dets)
            assert plan.is_inside_frame()
            if plan.is_stacked:
                assert plan.combined_aspect() == AspectRatio(width=9, height=16)
                assert len(plan.regions) == 2

    def test_portrait_source(self):
        config = ReframeConfig(use_stack_crop=True)
        plan = compute_candidate_plan([head(0.2), head(0.8)], 1080, 1920, config)
        assert plan.is_inside_frame()
        for region in plan.regions:
            assert region.pixel_aspect(1080, 1920) == pytest.approx(region.target_aspect.ratio)

    def test_compute_candidate_plan_defaults(self):
        plan = compute_candidate_plan([head(0.5)], WIDTH, HEIGHT)
        assert plan.kind == PlanKind.SINGLE
