"""
Detection filtering and boundary validation.

Raw detections from the inference collaborator are validated here and
reduced to the candidate set the crop planner works from.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional, Union

from pydantic import ValidationError

from portrait_crop.exceptions import InvalidDetectionError
from portrait_crop.models import Detection, ObjectKind, Rect

logger = logging.getLogger(__name__)

RawDetection = Union[Detection, Mapping[str, Any]]


def filter_detections(
    detections: Sequence[Detection],
    prob_threshold: float,
    area_threshold: float,
    kind: Optional[ObjectKind] = None,
) -> list[Detection]:
    """
    Keep detections that are confident and large enough.

    Args:
        detections: Detections for one frame, in detector order.
        prob_threshold: Minimum confidence (inclusive).
        area_threshold: Minimum box area as fraction of frame area
            (inclusive). Not applied to balls.
        kind: If given, only detections of this kind are kept.

    Returns:
        The retained detections, order preserved. May be empty.
    """
    kept = []
    for det in detections:
        if kind is not None and det.label != kind:
            continue
        if det.confidence < prob_threshold:
            continue
        if det.bbox.area < area_threshold and not det.label.exempt_from_area_threshold:
            continue
        kept.append(det)
    return kept


def _bbox_from_raw(value: Any, pixel_size: Optional[tuple[int, int]]) -> Rect:
    if isinstance(value, Rect):
        rect = value
    elif isinstance(value, Mapping):
        rect = Rect.model_validate(value)
    else:
        x, y, w, h = (float(v) for v in value)
        rect = Rect(x=x, y=y, width=w, height=h)

    if pixel_size is not None:
        frame_width, frame_height = pixel_size
        rect = Rect.from_pixels(
            rect.x, rect.y, rect.width, rect.height, frame_width, frame_height
        )
    return rect.clamped()


def parse_detection(
    raw: RawDetection,
    pixel_size: Optional[tuple[int, int]] = None,
) -> Detection:
    """
    Validate one raw detection.

    Accepts a Detection or a mapping with ``label``, ``confidence`` and
    ``bbox`` (a mapping with x/y/width/height or an [x, y, w, h] list).
    Boxes are normalized when ``pixel_size`` is given and clamped to the
    frame.

    Raises:
        InvalidDetectionError: On non-positive box dimensions, confidence
            outside [0, 1], an unknown label or a box entirely outside
            the frame.
    """
    try:
        if isinstance(raw, Detection):
            if pixel_size is None:
                return raw.model_copy(update={"bbox": raw.bbox.clamped()})
            raw = raw.model_dump()
        bbox = _bbox_from_raw(raw["bbox"], pixel_size)
        return Detection(
            label=raw["label"],
            confidence=raw["confidence"],
            bbox=bbox,
        )
    except (ValidationError, KeyError, TypeError, ValueError) as e:
        raise InvalidDetectionError(f"Invalid detection {raw!r}: {e}") from e


def parse_detections(
    raw_detections: Iterable[RawDetection],
    pixel_size: Optional[tuple[int, int]] = None,
) -> list[Detection]:
    """Validate every detection of one frame. See parse_detection."""
    return [parse_detection(raw, pixel_size) for raw in raw_detections]
