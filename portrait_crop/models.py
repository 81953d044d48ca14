"""
Data models for the portrait crop engine.

Geometry is stored in normalized frame coordinates ([0,1] x [0,1]);
aspect ratios are expressed in pixel space. All models use Pydantic
for validation and serialization.
"""

from enum import Enum
from fractions import Fraction
from math import lcm
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Slack for float comparisons against the unit square.
EPSILON = 1e-9


class AspectRatio(BaseModel):
    """Aspect ratio of a crop region or output video."""

    width: int = Field(..., ge=1, description="Aspect ratio width component")
    height: int = Field(..., ge=1, description="Aspect ratio height component")

    def __hash__(self):
        return hash((self.width, self.height))

    def __eq__(self, other):
        if isinstance(other, AspectRatio):
            return self.width == other.width and self.height == other.height
        return False

    @property
    def ratio(self) -> float:
        """Returns width/height as float."""
        return self.width / self.height

    @property
    def fraction(self) -> Fraction:
        """Exact width/height."""
        return Fraction(self.width, self.height)

    def same_shape(self, other: "AspectRatio") -> bool:
        """True when both ratios describe the same shape (9:8 == 18:16)."""
        return self.fraction == other.fraction

    def __str__(self) -> str:
        return f"{self.width}:{self.height}"

    @classmethod
    def from_string(cls, s: str) -> "AspectRatio":
        """Parse aspect ratio from string like '9:16' or '9x16'."""
        for sep in [":", "x", "/"]:
            if sep in s:
                parts = s.split(sep)
                if len(parts) == 2:
                    return cls(width=int(parts[0]), height=int(parts[1]))
        raise ValueError(f"Invalid aspect ratio format: {s}")

    @classmethod
    def from_fraction(cls, value: Fraction) -> "AspectRatio":
        return cls(width=value.numerator, height=value.denominator)

    def split(self, top_parts: int, bottom_parts: int) -> tuple["AspectRatio", "AspectRatio"]:
        """
        Split this ratio into two vertically stacked ratios of equal width.

        The heights are proportional to ``top_parts`` and ``bottom_parts``.
        9:16 split (3, 5) gives 9:6 and 9:10; split (1, 1) gives 9:8 twice.
        """
        total = top_parts + bottom_parts
        top_h = Fraction(self.height * top_parts, total)
        bottom_h = Fraction(self.height * bottom_parts, total)
        scale = lcm(top_h.denominator, bottom_h.denominator)
        width = self.width * scale
        return (
            AspectRatio(width=width, height=int(top_h * scale)),
            AspectRatio(width=width, height=int(bottom_h * scale)),
        )

    def half(self) -> "AspectRatio":
        """Ratio of one half of an evenly split vertical stack."""
        return self.split(1, 1)[0]

    @classmethod
    def stack(cls, top: "AspectRatio", bottom: "AspectRatio") -> "AspectRatio":
        """
        Combined ratio of two regions scaled to the same width and
        concatenated vertically.
        """
        # Heights per unit width add up.
        combined = 1 / (1 / top.fraction + 1 / bottom.fraction)
        return cls.from_fraction(combined)


class Rect(BaseModel):
    """Axis-aligned box in normalized frame coordinates."""

    model_config = ConfigDict(allow_inf_nan=False)

    x: float = Field(..., description="Left edge x-coordinate")
    y: float = Field(..., description="Top edge y-coordinate")
    width: float = Field(..., gt=0, description="Box width")
    height: float = Field(..., gt=0, description="Box height")

    @property
    def cx(self) -> float:
        """Center x-coordinate."""
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        """Center y-coordinate."""
        return self.y + self.height / 2

    @property
    def x2(self) -> float:
        """Right edge x-coordinate."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge y-coordinate."""
        return self.y + self.height

    @property
    def area(self) -> float:
        """Box area as a fraction of the frame."""
        return self.width * self.height

    def intersection(self, other: "Rect") -> Optional["Rect"]:
        """Overlapping box, or None when the boxes are disjoint."""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.x2, other.x2)
        y2 = min(self.y2, other.y2)

        if x2 <= x1 or y2 <= y1:
            return None
        return Rect(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    def iou(self, other: "Rect") -> float:
        """Compute Intersection over Union with another box."""
        inter = self.intersection(other)
        if inter is None:
            return 0.0
        union = self.area + other.area - inter.area
        return inter.area / union if union > 0 else 0.0

    def pad(self, fraction: float) -> "Rect":
        """Return a new box grown by ``fraction`` of its size on every side."""
        dx = self.width * fraction
        dy = self.height * fraction
        return Rect(
            x=self.x - dx,
            y=self.y - dy,
            width=self.width + 2 * dx,
            height=self.height + 2 * dy,
        )

    def clamped(self) -> "Rect":
        """
        Intersect with the unit square.

        Raises a ValueError when nothing of the box lies inside the frame.
        """
        if self.is_inside_frame(tolerance=0.0):
            return self
        x1 = min(max(self.x, 0.0), 1.0)
        y1 = min(max(self.y, 0.0), 1.0)
        x2 = min(max(self.x2, 0.0), 1.0)
        y2 = min(max(self.y2, 0.0), 1.0)
        return Rect(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    def is_inside_frame(self, tolerance: float = EPSILON) -> bool:
        return (
            self.x >= -tolerance
            and self.y >= -tolerance
            and self.x2 <= 1.0 + tolerance
            and self.y2 <= 1.0 + tolerance
        )

    def contains(self, other: "Rect", tolerance: float = EPSILON) -> bool:
        return (
            other.x >= self.x - tolerance
            and other.y >= self.y - tolerance
            and other.x2 <= self.x2 + tolerance
            and other.y2 <= self.y2 + tolerance
        )

    def to_pixels(self, frame_width: int, frame_height: int) -> tuple[float, float, float, float]:
        """Return (x, y, width, height) in pixels."""
        return (
            self.x * frame_width,
            self.y * frame_height,
            self.width * frame_width,
            self.height * frame_height,
        )

    @classmethod
    def from_pixels(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        frame_width: int,
        frame_height: int,
    ) -> "Rect":
        return cls(
            x=x / frame_width,
            y=y / frame_height,
            width=width / frame_width,
            height=height / frame_height,
        )

    @classmethod
    def union(cls, rects: list["Rect"]) -> Optional["Rect"]:
        """Compute bounding box that contains all input boxes."""
        if not rects:
            return None
        x = min(r.x for r in rects)
        y = min(r.y for r in rects)
        x2 = max(r.x2 for r in rects)
        y2 = max(r.y2 for r in rects)
        return cls(x=x, y=y, width=x2 - x, height=y2 - y)


class ObjectKind(str, Enum):
    """Object categories the detector can be asked to track."""

    FACE = "face"
    HEAD = "head"
    BALL = "ball"
    PERSON = "person"
    CAR = "car"
    TRUCK = "truck"
    BUS = "bus"
    MOTORCYCLE = "motorcycle"
    BICYCLE = "bicycle"

    @property
    def exempt_from_area_threshold(self) -> bool:
        # Balls are small on screen by nature.
        return self is ObjectKind.BALL


class Detection(BaseModel):
    """One detected object in one frame."""

    label: ObjectKind = Field(..., description="Detected object kind")
    confidence: float = Field(..., ge=0, le=1, description="Detection confidence")
    bbox: Rect = Field(..., description="Bounding box in normalized coordinates")


class CropRegion(BaseModel):
    """One output crop window."""

    rect: Rect = Field(..., description="Crop window in normalized coordinates")
    target_aspect: AspectRatio = Field(..., description="Pixel aspect of the window")

    def pixel_aspect(self, frame_width: int, frame_height: int) -> float:
        """Actual width/height of the window in source pixels."""
        return (self.rect.width * frame_width) / (self.rect.height * frame_height)


class PlanKind(str, Enum):
    """How the crop regions are composed into the output frame."""

    SINGLE = "single"
    STACKED = "stacked"
    RESIZE = "resize"


class CropPlan(BaseModel):
    """
    Crop decision for one output frame.

    Single and resize plans hold one region. Stacked plans hold two,
    ordered top then bottom.
    """

    kind: PlanKind = Field(..., description="Composition mode")
    regions: list[CropRegion] = Field(..., description="Crop regions, top first")
    subject_count: int = Field(
        0, ge=0, description="Number of subjects the plan was computed from"
    )

    @model_validator(mode="after")
    def _check_region_count(self) -> "CropPlan":
        expected = 2 if self.kind == PlanKind.STACKED else 1
        if len(self.regions) != expected:
            raise ValueError(
                f"{self.kind.value} plan needs {expected} region(s), got {len(self.regions)}"
            )
        return self

    @classmethod
    def single(cls, region: CropRegion, subject_count: int = 0) -> "CropPlan":
        return cls(kind=PlanKind.SINGLE, regions=[region], subject_count=subject_count)

    @classmethod
    def stacked(
        cls, top: CropRegion, bottom: CropRegion, subject_count: int = 0
    ) -> "CropPlan":
        return cls(kind=PlanKind.STACKED, regions=[top, bottom], subject_count=subject_count)

    @classmethod
    def resize(cls, region: CropRegion, subject_count: int = 0) -> "CropPlan":
        return cls(kind=PlanKind.RESIZE, regions=[region], subject_count=subject_count)

    @property
    def is_stacked(self) -> bool:
        return self.kind == PlanKind.STACKED

    @property
    def top(self) -> CropRegion:
        return self.regions[0]

    @property
    def bottom(self) -> Optional[CropRegion]:
        return self.regions[1] if self.is_stacked else None

    def combined_aspect(self) -> AspectRatio:
        """Aspect ratio of the composed output before any letterboxing."""
        if self.is_stacked:
            return AspectRatio.stack(self.regions[0].target_aspect, self.regions[1].target_aspect)
        return self.regions[0].target_aspect

    def is_inside_frame(self) -> bool:
        return all(r.rect.is_inside_frame() for r in self.regions)


class CutDecision(BaseModel):
    """Scene-cut verdict for one consecutive frame pair."""

    is_cut: bool = Field(..., description="Whether a hard cut was detected")
    similarity_score: float = Field(
        ..., ge=0, le=1, description="Similarity to the previous frame"
    )


class VideoMeta(BaseModel):
    """Metadata about the source video."""

    width: int = Field(..., ge=1, description="Frame width in pixels")
    height: int = Field(..., ge=1, description="Frame height in pixels")
    fps: float = Field(..., gt=0, description="Video frame rate")
    frame_count: int = Field(0, ge=0, description="Number of frames, 0 if unknown")
    input_path: Optional[str] = Field(None, description="Path to input video")

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps


class FrameResult(BaseModel):
    """What the engine emits for one frame."""

    index: int = Field(..., ge=0, description="Frame index")
    timestamp: float = Field(..., ge=0, description="Frame timestamp in seconds")
    plan: CropPlan = Field(..., description="Stable plan to apply to this frame")
    candidate: CropPlan = Field(..., description="Plan computed from this frame alone")
    cut: CutDecision = Field(..., description="Scene-cut verdict for this frame")
    promoted: bool = Field(False, description="True when the stable plan changed")


class CropTimeline(BaseModel):
    """
    Per-frame crop plans for a whole video.

    Can be serialized to JSON for caching, debugging, or re-rendering.
    """

    video: VideoMeta = Field(..., description="Source video metadata")
    output_aspect_ratio: AspectRatio = Field(..., description="Composed output ratio")
    frames: list[FrameResult] = Field(default_factory=list, description="Per-frame results")

    @property
    def cut_count(self) -> int:
        return sum(1 for f in self.frames if f.cut.is_cut)

    def to_json_file(self, path: str) -> None:
        """Serialize timeline to JSON file."""
        Path(path).write_text(self.model_dump_json(indent=2), encoding="utf-8")

    @classmethod
    def from_json_file(cls, path: str) -> "CropTimeline":
        """Load timeline from JSON file."""
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))
