"""
Composition of portrait output frames from crop plans.

Single and resize plans are letterboxed onto a black canvas; stacked
plans are scaled to the output width and concatenated vertically.
"""

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from portrait_crop.exceptions import VideoSourceError
from portrait_crop.models import AspectRatio, CropPlan, CropRegion, CropTimeline
from portrait_crop.utils.opencv import iter_frames

logger = logging.getLogger(__name__)

# Top margin of letterboxed single crops, as a fraction of canvas height.
LETTERBOX_TOP_FRACTION = 1 / 16


def output_size(output_width: int, output_aspect: AspectRatio) -> tuple[int, int]:
    """(width, height) of the composed frame."""
    height = int(round(output_width * output_aspect.height / output_aspect.width))
    return output_width, max(height, 1)


def _resize(image: np.ndarray, width: int, height: int) -> np.ndarray:
    src_h, src_w = image.shape[:2]
    shrinking = width * height < src_w * src_h
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LANCZOS4
    return cv2.resize(image, (width, height), interpolation=interpolation)


def crop_region(frame: np.ndarray, region: CropRegion) -> np.ndarray:
    """Cut a region out of a frame; at least one pixel in each direction."""
    frame_h, frame_w = frame.shape[:2]
    x, y, w, h = region.rect.to_pixels(frame_w, frame_h)

    x0 = min(max(int(round(x)), 0), frame_w - 1)
    y0 = min(max(int(round(y)), 0), frame_h - 1)
    x1 = min(max(int(round(x + w)), x0 + 1), frame_w)
    y1 = min(max(int(round(y + h)), y0 + 1), frame_h)
    return frame[y0:y1, x0:x1]


def _letterbox(crop: np.ndarray, width: int, height: int) -> np.ndarray:
    canvas = np.zeros((height, width) + crop.shape[2:], dtype=crop.dtype)

    crop_h, crop_w = crop.shape[:2]
    scaled_w = width
    scaled_h = max(int(round(width * crop_h / crop_w)), 1)
    if scaled_h > height:
        scaled_h = height
        scaled_w = max(int(round(height * crop_w / crop_h)), 1)

    scaled = _resize(crop, scaled_w, scaled_h)
    top = min(int(height * LETTERBOX_TOP_FRACTION), height - scaled_h)
    left = (width - scaled_w) // 2
    canvas[top:top + scaled_h, left:left + scaled_w] = scaled
    return canvas


def _stack(frame: np.ndarray, plan: CropPlan, width: int, height: int) -> np.ndarray:
    parts = []
    for region in plan.regions:
        part_h = max(int(round(width / region.target_aspect.ratio)), 1)
        parts.append(_resize(crop_region(frame, region), width, part_h))

    stacked = np.vstack(parts)
    if stacked.shape[0] != height:
        stacked = _resize(stacked, width, height)
    return stacked


def compose_frame(
    frame: np.ndarray,
    plan: CropPlan,
    output_width: int = 1080,
    output_aspect: Optional[AspectRatio] = None,
) -> np.ndarray:
    """
    Build one output frame.

    Args:
        frame: Source BGR frame.
        plan: Plan to apply.
        output_width: Output width in pixels.
        output_aspect: Output aspect ratio (default 9:16).

    Returns:
        BGR image of the output size.
    """
    if output_aspect is None:
        output_aspect = AspectRatio(width=9, height=16)
    width, height = output_size(output_width, output_aspect)

    if plan.is_stacked:
        return _stack(frame, plan, width, height)
    return _letterbox(crop_region(frame, plan.top), width, height)


def render_timeline(
    video_path: str,
    timeline: CropTimeline,
    output_path: str,
    output_width: int = 1080,
) -> str:
    """
    Render a reframed video from a timeline with OpenCV.

    Frames without an entry in the timeline reuse the previous plan.
    Audio is not carried over.

    Returns:
        The output path.
    """
    if not timeline.frames:
        raise ValueError("Timeline has no frames to render")

    plans = {f.index: f.plan for f in timeline.frames}
    width, height = output_size(output_width, timeline.output_aspect_ratio)

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    fourcc = cv2.VideoWriter_fourcc(*"mp4v")
    writer = cv2.VideoWriter(output_path, fourcc, timeline.video.fps, (width, height))
    if not writer.isOpened():
        raise VideoSourceError(f"Failed to open video writer: {output_path}")

    written = 0
    plan = timeline.frames[0].plan
    try:
        for index, frame in iter_frames(video_path):
            plan = plans.get(index, plan)
            writer.write(
                compose_frame(frame, plan, width, timeline.output_aspect_ratio)
            )
            written += 1
    finally:
        writer.release()

    logger.info(f"Rendered {written} frames to {output_path}")
    return output_path
