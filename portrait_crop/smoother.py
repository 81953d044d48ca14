"""
Temporal smoothing of candidate crop plans.

Per-frame candidates are noisy. The smoother keeps emitting the current
stable plan until a differing candidate has persisted for the smoothing
window, absorbs small jitter, and adopts candidates immediately across
scene cuts.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from portrait_crop.config import ReframeConfig
from portrait_crop.history import PlanHistory
from portrait_crop.models import CropPlan, CutDecision

logger = logging.getLogger(__name__)

# Slack on the percentage comparison.
_PERCENT_EPSILON = 1e-6

# Subject counts from this value up share one crop class.
_MAX_CROP_CLASS = 4


def crop_class(subject_count: int) -> int:
    """Bucket a subject count: 0, 1, 2, 3 or 4+."""
    return min(subject_count, _MAX_CROP_CLASS)


def plan_difference(first: CropPlan, second: CropPlan) -> float:
    """
    Difference between two plans as a percentage of frame dimensions.

    Compares region centers and sizes; horizontal values relative to the
    frame width, vertical ones relative to the frame height. Plans that
    differ in kind, region count or crop class are infinitely apart.
    """
    if (
        first.kind != second.kind
        or len(first.regions) != len(second.regions)
        or crop_class(first.subject_count) != crop_class(second.subject_count)
    ):
        return math.inf

    worst = 0.0
    for a, b in zip(first.regions, second.regions):
        worst = max(
            worst,
            abs(a.rect.cx - b.rect.cx),
            abs(a.rect.cy - b.rect.cy),
            abs(a.rect.width - b.rect.width),
            abs(a.rect.height - b.rect.height),
        )
    return worst * 100.0


def plans_similar(first: CropPlan, second: CropPlan, threshold_percent: float) -> bool:
    return plan_difference(first, second) <= threshold_percent + _PERCENT_EPSILON


class Transition(str, Enum):
    """Why the smoother emitted what it emitted."""

    INITIAL = "initial"
    CUT = "cut"
    ABSORBED = "absorbed"
    IMMEDIATE = "immediate"
    PENDING_STARTED = "pending_started"
    PENDING_HELD = "pending_held"
    PROMOTED = "promoted"


@dataclass
class SmootherStep:
    """Outcome of one smoother update."""

    plan: CropPlan
    transition: Transition

    @property
    def changed(self) -> bool:
        return self.transition in (
            Transition.INITIAL,
            Transition.CUT,
            Transition.IMMEDIATE,
            Transition.PROMOTED,
        )


@dataclass
class SmoothingState:
    """
    Smoothing state of one job. Never shared between jobs.

    ``history`` records the candidates seen since the last cut, bounded to
    the smoothing window. It is kept for inspection; promotion decisions
    use ``pending_since`` only.
    """

    history: PlanHistory
    last_stable_plan: Optional[CropPlan] = None
    pending_plan: Optional[CropPlan] = None
    pending_since: Optional[int] = None
    pending_since_time: Optional[float] = None
    frames_seen: int = field(default=0)

    def clear_pending(self) -> None:
        self.pending_plan = None
        self.pending_since = None
        self.pending_since_time = None

    def reset(self) -> None:
        """Forget everything learned since the last cut."""
        self.clear_pending()
        self.history.clear()


class TemporalSmoother:
    """
    Stable/pending state machine over candidate plans.

    History mode promotes a differing candidate once it has persisted for
    ``smooth_duration`` seconds; simple mode adopts it at once. Both modes
    share the same cut and jitter handling.
    """

    def __init__(self, config: ReframeConfig, fps: float):
        self.config = config
        self.fps = fps
        self.smooth_frames = config.smooth_frames(fps)
        self.state = SmoothingState(
            history=PlanHistory(
                window=config.smooth_duration,
                capacity=self.smooth_frames + 1,
            )
        )

    @property
    def stable_plan(self) -> Optional[CropPlan]:
        return self.state.last_stable_plan

    @property
    def smoothing_disabled(self) -> bool:
        """Zero tolerance or zero window: every candidate goes through."""
        return self.smooth_frames == 0 or self.config.smooth_percentage <= 0

    def reset(self) -> None:
        """Drop all state, as at job start."""
        self.state.reset()
        self.state.last_stable_plan = None
        self.state.frames_seen = 0

    def update(
        self,
        candidate: CropPlan,
        cut: Union[CutDecision, bool],
        frame_index: int,
    ) -> SmootherStep:
        """
        Feed the candidate of one frame and get the plan to emit.

        Args:
            candidate: Plan computed from this frame alone.
            cut: Scene-cut verdict for this frame.
            frame_index: Index of the frame; frames must arrive in order.

        Returns:
            SmootherStep with the plan to emit and the transition taken.
        """
        state = self.state
        state.frames_seen += 1
        timestamp = frame_index / self.fps
        is_cut = cut.is_cut if isinstance(cut, CutDecision) else bool(cut)

        if state.last_stable_plan is None:
            state.reset()
            state.history.add(timestamp, candidate)
            return self._adopt(candidate, Transition.INITIAL, frame_index)

        if is_cut:
            state.reset()
            state.history.add(timestamp, candidate)
            return self._adopt(candidate, Transition.CUT, frame_index)

        state.history.add(timestamp, candidate)
        stable = state.last_stable_plan

        if self.smoothing_disabled:
            if candidate == stable:
                return SmootherStep(stable, Transition.ABSORBED)
            return self._adopt(candidate, Transition.IMMEDIATE, frame_index)

        if plans_similar(candidate, stable, self.config.smooth_percentage):
            state.clear_pending()
            return SmootherStep(stable, Transition.ABSORBED)

        if self.config.use_simple_smoothing:
            return self._adopt(candidate, Transition.IMMEDIATE, frame_index)

        pending = state.pending_plan
        if pending is None or not plans_similar(
            candidate, pending, self.config.smooth_percentage
        ):
            state.pending_plan = candidate
            state.pending_since = frame_index
            state.pending_since_time = timestamp
            if self.config.debug:
                logger.debug(f"Frame {frame_index}: pending plan started")
            return SmootherStep(stable, Transition.PENDING_STARTED)

        if frame_index - state.pending_since >= self.smooth_frames:
            return self._adopt(pending, Transition.PROMOTED, frame_index)

        return SmootherStep(stable, Transition.PENDING_HELD)

    def _adopt(self, plan: CropPlan, transition: Transition, frame_index: int) -> SmootherStep:
        self.state.last_stable_plan = plan
        self.state.clear_pending()
        if self.config.debug:
            logger.debug(
                f"Frame {frame_index}: {transition.value} -> {plan.kind.value} plan"
            )
        return SmootherStep(plan, transition)
