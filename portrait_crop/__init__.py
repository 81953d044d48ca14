"""
Portrait Crop - crop planning for landscape to portrait reframing.

This package turns per-frame object detections of a landscape video into
stable portrait crop plans: a single crop window, or two windows stacked
vertically, for every frame. Detection itself is left to the caller.

Usage:
    from portrait_crop import ReframeJob, ReframeConfig, VideoMeta

    job = ReframeJob(
        config=ReframeConfig(use_stack_crop=True),
        video=VideoMeta(width=1920, height=1080, fps=30),
    )

    # Option 1: Feed frames one at a time
    result = job.process_frame(0, detections, similarity=None)
    print(result.plan)

    # Option 2: Plan a whole video file with a detector callback
    timeline = reframe_video("input.mp4", detect_fn=my_detector)
    timeline.to_json_file("plan.json")
"""

from portrait_crop.models import (
    AspectRatio,
    Rect,
    ObjectKind,
    Detection,
    CropRegion,
    PlanKind,
    CropPlan,
    CutDecision,
    VideoMeta,
    FrameResult,
    CropTimeline,
)
from portrait_crop.config import ReframeConfig
from portrait_crop.config_factory import get_config_from_env, get_preset_config
from portrait_crop.exceptions import (
    ReframeError,
    PreconditionError,
    InvalidDetectionError,
    InvalidSimilarityError,
    FrameOrderError,
    VideoSourceError,
)
from portrait_crop.detection_filter import filter_detections, parse_detections
from portrait_crop.crop_planner import CropPlanner, compute_candidate_plan
from portrait_crop.cut_detector import CutDetector
from portrait_crop.smoother import SmoothingState, TemporalSmoother
from portrait_crop.ball_tracker import BallTracker
from portrait_crop.compositor import compose_frame, render_timeline
from portrait_crop.pipeline import FrameInput, ReframeJob, reframe_video

__version__ = "0.1.0"

__all__ = [
    # Pipeline
    "ReframeJob",
    "FrameInput",
    "reframe_video",
    # Components
    "filter_detections",
    "parse_detections",
    "CropPlanner",
    "compute_candidate_plan",
    "CutDetector",
    "TemporalSmoother",
    "SmoothingState",
    "BallTracker",
    "compose_frame",
    "render_timeline",
    # Configuration
    "ReframeConfig",
    "get_preset_config",
    "get_config_from_env",
    # Errors
    "ReframeError",
    "PreconditionError",
    "InvalidDetectionError",
    "InvalidSimilarityError",
    "FrameOrderError",
    "VideoSourceError",
    # Data models
    "AspectRatio",
    "Rect",
    "ObjectKind",
    "Detection",
    "CropRegion",
    "PlanKind",
    "CropPlan",
    "CutDecision",
    "VideoMeta",
    "FrameResult",
    "CropTimeline",
]
