"""
Crop geometry for one frame.

This module maps the filtered detections of a frame to a candidate
crop plan: one crop window, or two windows stacked vertically, that
together compose the portrait output.
"""

import logging
import math
from fractions import Fraction
from typing import Optional, Sequence

from portrait_crop.config import ReframeConfig
from portrait_crop.models import (
    AspectRatio,
    CropPlan,
    CropRegion,
    Detection,
    Rect,
)

logger = logging.getLogger(__name__)

# Fallback framing when nobody is in the frame.
NO_SUBJECT_ASPECT = AspectRatio(width=3, height=4)

# Heights of the two three-subject regions, in parts of the output height.
THREE_SUBJECT_SPLIT = (3, 5)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


class CropPlanner:
    """
    Compute candidate crop plans from per-frame detections.

    Works in source pixels internally so that aspect ratios are exact,
    and emits regions in normalized coordinates.
    """

    def __init__(
        self,
        config: ReframeConfig,
        frame_width: int,
        frame_height: int,
    ):
        self.config = config
        self.frame_width = frame_width
        self.frame_height = frame_height

        self.single_aspect = config.effective_single_aspect
        self.stack_aspect = config.output_aspect_ratio.half()
        self.three_top_aspect, self.three_bottom_aspect = config.output_aspect_ratio.split(
            *THREE_SUBJECT_SPLIT
        )

    def plan(self, detections: Sequence[Detection], is_graphic: bool = False) -> CropPlan:
        """
        Compute the candidate plan for one frame.

        Args:
            detections: Filtered detections for the frame.
            is_graphic: Caller's verdict that the frame shows a graphic
                (slide, diagram). Only used when there are no subjects.

        Returns:
            CropPlan whose regions lie inside the frame.
        """
        count = len(detections)
        boxes = [self._to_pixels(d.bbox) for d in detections]

        if count == 0:
            plan = self._plan_no_subjects(is_graphic)
        elif count == 1:
            plan = CropPlan.single(self._single_region(boxes[0]), subject_count=1)
        elif count == 2:
            plan = self._plan_pair(boxes[0], boxes[1], subject_count=2)
        elif count == 3:
            plan = self._plan_three(boxes)
        elif count <= 5:
            plan = self._plan_group(boxes)
        else:
            # Crowds: follow the dominant figure.
            plan = CropPlan.single(
                self._single_region(self._largest(boxes)), subject_count=count
            )

        if self.config.debug:
            logger.debug(f"{count} subject(s) -> {plan.kind.value} plan")
        return plan

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _plan_no_subjects(self, is_graphic: bool) -> CropPlan:
        if is_graphic and self.config.keep_graphic:
            frame_aspect = AspectRatio.from_fraction(
                Fraction(self.frame_width, self.frame_height)
            )
            region = CropRegion(
                rect=Rect(x=0.0, y=0.0, width=1.0, height=1.0),
                target_aspect=frame_aspect,
            )
            return CropPlan.resize(region, subject_count=0)

        height = min(self.frame_height, self.frame_width / NO_SUBJECT_ASPECT.ratio)
        width = height * NO_SUBJECT_ASPECT.ratio
        rect = self._place(self.frame_width / 2, self.frame_height / 2, width, height)
        return CropPlan.single(self._to_region(rect, NO_SUBJECT_ASPECT), subject_count=0)

    def _plan_pair(self, first: Rect, second: Rect, subject_count: int) -> CropPlan:
        """Two anchors: share one crop when close, otherwise stack or pick one."""
        if self._spread([first, second]) < self.config.close_threshold:
            union = Rect.union([first, second])
            return CropPlan.single(self._single_region(union), subject_count=subject_count)

        if self.config.use_stack_crop:
            return self._stacked_around(first, second, subject_count)

        return CropPlan.single(
            self._single_region(self._largest([first, second])),
            subject_count=subject_count,
        )

    def _plan_three(self, boxes: list[Rect]) -> CropPlan:
        """
        Three subjects of similar size, evenly spread across the frame,
        get a dedicated layout: the closer pair on top, the third below.
        """
        if self.config.use_stack_crop and self._is_even_trio(boxes):
            ordered = sorted(boxes, key=lambda b: b.cx)
            left_gap = ordered[1].cx - ordered[0].cx
            right_gap = ordered[2].cx - ordered[1].cx
            if left_gap <= right_gap:
                pair, lone = ordered[:2], ordered[2]
            else:
                pair, lone = ordered[1:], ordered[0]

            min_height = self.frame_height * self.config.three_region_height
            top = self._fit(Rect.union(pair), self.three_top_aspect, min_height)
            bottom = self._fit(lone, self.three_bottom_aspect, min_height)
            return CropPlan.stacked(
                self._to_region(top, self.three_top_aspect),
                self._to_region(bottom, self.three_bottom_aspect),
                subject_count=3,
            )

        # Anchor on the two largest subjects; the third only counts.
        first, second = sorted(boxes, key=lambda b: b.area, reverse=True)[:2]
        return self._plan_pair(first, second, subject_count=3)

    def _plan_group(self, boxes: list[Rect]) -> CropPlan:
        """Four or five subjects."""
        count = len(boxes)
        if self._spread(boxes) < self.config.close_threshold:
            return CropPlan.single(
                self._single_region(Rect.union(boxes)), subject_count=count
            )

        if self.config.use_stack_crop:
            leftmost = min(boxes, key=lambda b: b.cx)
            rightmost = max(boxes, key=lambda b: b.cx)
            return self._stacked_around(leftmost, rightmost, count)

        return CropPlan.single(self._single_region(self._largest(boxes)), subject_count=count)

    def _stacked_around(self, first: Rect, second: Rect, subject_count: int) -> CropPlan:
        """One half-height region per anchor; the left anchor goes on top."""
        left, right = (first, second) if first.cx <= second.cx else (second, first)

        # Each half spans half the frame width by default.
        ratio = self.stack_aspect.ratio
        min_height = min(self.frame_width / 2 / ratio, self.frame_height)

        top = self._fit(left, self.stack_aspect, min_height)
        bottom = self._fit(right, self.stack_aspect, min_height)
        return CropPlan.stacked(
            self._to_region(top, self.stack_aspect),
            self._to_region(bottom, self.stack_aspect),
            subject_count=subject_count,
        )

    # ------------------------------------------------------------------
    # Geometry helpers (pixel space)
    # ------------------------------------------------------------------

    def _single_region(self, anchor: Rect) -> CropRegion:
        rect = self._fit(
            anchor,
            self.single_aspect,
            self.frame_height / self.config.max_zoom_factor,
        )
        return self._to_region(rect, self.single_aspect)

    def _fit(
        self,
        anchor: Rect,
        aspect: AspectRatio,
        min_height: Optional[float] = None,
    ) -> Rect:
        """
        Smallest window of ``aspect`` that holds the padded anchor.

        The window is at least ``min_height`` tall, centered on the anchor
        and kept inside the frame. Padding is dropped before the window
        is allowed to lose part of the anchor; when even the bare anchor
        does not fit, the largest window of that aspect is centered on it.
        """
        ratio = aspect.ratio
        max_height = min(self.frame_height, self.frame_width / ratio)
        floor = min_height or 0.0

        height = max_height
        for padding in (self.config.subject_padding, 0.0):
            box = anchor.pad(padding) if padding > 0 else anchor
            needed = max(box.height, box.width / ratio, floor)
            if needed <= max_height:
                height = needed
                break

        height = min(height, max_height)
        width = height * ratio
        return self._place(anchor.cx, anchor.cy, width, height)

    def _place(self, cx: float, cy: float, width: float, height: float) -> Rect:
        """Center a window on (cx, cy), shifted to lie inside the frame."""
        x = _clamp(cx - width / 2, 0.0, self.frame_width - width)
        y = _clamp(cy - height / 2, 0.0, self.frame_height - height)
        return Rect(x=x, y=y, width=width, height=height)

    def _spread(self, boxes: list[Rect]) -> float:
        """Largest center distance between any two boxes, over frame width."""
        max_distance = 0.0
        for i in range(len(boxes)):
            for j in range(i + 1, len(boxes)):
                dx = boxes[i].cx - boxes[j].cx
                dy = boxes[i].cy - boxes[j].cy
                max_distance = max(max_distance, math.hypot(dx, dy))
        return max_distance / self.frame_width

    def _is_even_trio(self, boxes: list[Rect]) -> bool:
        areas = [b.area for b in boxes]
        similar_size = max(areas) / min(areas) <= self.config.three_area_ratio

        centers = sorted(b.cx for b in boxes)
        gaps = (centers[1] - centers[0], centers[2] - centers[1])
        if min(gaps) <= 0:
            return False
        evenly_spaced = max(gaps) / min(gaps) <= self.config.three_spacing_ratio
        return similar_size and evenly_spaced

    @staticmethod
    def _largest(boxes: list[Rect]) -> Rect:
        return max(boxes, key=lambda b: b.area)

    def _to_pixels(self, rect: Rect) -> Rect:
        return Rect(
            x=rect.x * self.frame_width,
            y=rect.y * self.frame_height,
            width=rect.width * self.frame_width,
            height=rect.height * self.frame_height,
        )

    def _to_region(self, rect: Rect, aspect: AspectRatio) -> CropRegion:
        width = min(rect.width / self.frame_width, 1.0)
        height = min(rect.height / self.frame_height, 1.0)
        x = _clamp(rect.x / self.frame_width, 0.0, 1.0 - width)
        y = _clamp(rect.y / self.frame_height, 0.0, 1.0 - height)
        return CropRegion(
            rect=Rect(x=x, y=y, width=width, height=height),
            target_aspect=aspect,
        )


def compute_candidate_plan(
    detections: Sequence[Detection],
    frame_width: int,
    frame_height: int,
    config: Optional[ReframeConfig] = None,
    is_graphic: bool = False,
) -> CropPlan:
    """
    Convenience function for one-off planning.

    Args:
        detections: Filtered detections for the frame.
        frame_width: Source frame width in pixels.
        frame_height: Source frame height in pixels.
        config: Configuration options. Uses defaults if not provided.
        is_graphic: Whether the frame shows a graphic.

    Returns:
        Candidate CropPlan.
    """
    if config is None:
        config = ReframeConfig()

    planner = CropPlanner(config, frame_width, frame_height)
    return planner.plan(detections, is_graphic)
