"""
Configuration for the portrait crop engine.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from portrait_crop.models import AspectRatio, ObjectKind


class ReframeConfig(BaseModel):
    """Configuration for one reframing job."""

    # Detection source (device and model are passed through to the detector)
    object_kind: ObjectKind = Field(
        default=ObjectKind.HEAD, description="Object kind to track"
    )
    device: str = Field(default="cpu:0", description="Inference device, opaque to the engine")
    model: Optional[str] = Field(default=None, description="Detector model file, opaque to the engine")

    # Detection filter
    prob_threshold: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Minimum detection confidence",
    )
    area_threshold: float = Field(
        default=0.001,
        ge=0.0,
        le=1.0,
        description="Minimum box area as fraction of frame area (ignored for balls)",
    )

    # Framing
    output_aspect_ratio: AspectRatio = Field(
        default_factory=lambda: AspectRatio(width=9, height=16),
        description="Aspect ratio of the composed output",
    )
    single_aspect_ratio: Optional[AspectRatio] = Field(
        default=None,
        description="Aspect ratio of single crops; defaults to the output ratio",
    )
    use_stack_crop: bool = Field(
        default=False, description="Allow two stacked crops for separated subjects"
    )
    close_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.5,
        description="Subjects closer than this fraction of frame width share one crop",
    )
    subject_padding: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Padding around subjects as fraction of subject size",
    )
    max_zoom_factor: float = Field(
        default=1.0,
        ge=1.0,
        le=5.0,
        description="Maximum zoom relative to full frame height (1.0 = full height crops)",
    )

    # Three-subject layout
    three_area_ratio: float = Field(
        default=2.5,
        ge=1.0,
        description="Max largest/smallest area ratio for the three-subject layout",
    )
    three_spacing_ratio: float = Field(
        default=2.0,
        ge=1.0,
        description="Max ratio between the two horizontal gaps for the three-subject layout",
    )
    three_region_height: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Height of both three-subject regions as fraction of frame height",
    )

    # Graphic frames
    keep_graphic: bool = Field(
        default=False,
        description="Keep the whole frame when no subject is found and the frame is a graphic",
    )

    # Temporal smoothing
    smooth_percentage: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Plan differences up to this percentage of the frame are absorbed",
    )
    smooth_duration: float = Field(
        default=1.5,
        ge=0.0,
        le=30.0,
        description="Seconds a differing plan must persist before it is adopted",
    )
    use_simple_smoothing: bool = Field(
        default=False,
        description="Adopt differing plans immediately instead of waiting",
    )

    # Scene cuts
    cut_similarity: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Frames less similar than this to their predecessor are cuts",
    )
    cut_start: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Similarity below this right after a cut is still a cut",
    )
    cut_grace_frames: int = Field(
        default=5,
        ge=0,
        description="Frames after a cut during which cut_start applies",
    )

    # Pipeline
    queue_size: int = Field(
        default=32, ge=1, le=1024, description="Bounded queue size between producer and smoother"
    )

    # Rendering
    output_width: int = Field(
        default=1080, ge=16, description="Width of the composed output in pixels"
    )

    # Debug
    debug: bool = Field(default=False, description="Log every per-frame decision")

    @model_validator(mode="after")
    def _check_cut_thresholds(self) -> "ReframeConfig":
        if self.cut_start < self.cut_similarity:
            raise ValueError(
                f"cut_start ({self.cut_start}) must not be below cut_similarity ({self.cut_similarity})"
            )
        return self

    @property
    def effective_single_aspect(self) -> AspectRatio:
        return self.single_aspect_ratio or self.output_aspect_ratio

    def smooth_frames(self, fps: float) -> int:
        """Smoothing window converted to a frame count."""
        if self.smooth_duration <= 0 or fps <= 0:
            return 0
        return int(round(self.smooth_duration * fps))


# Default configurations for common use cases
RESPONSIVE_CONFIG = ReframeConfig(
    use_simple_smoothing=True,
    smooth_percentage=5.0,
    smooth_duration=0.5,
)

STABLE_CONFIG = ReframeConfig(
    smooth_percentage=12.0,
    smooth_duration=2.5,
    cut_grace_frames=8,
)

PODCAST_CONFIG = ReframeConfig(
    object_kind=ObjectKind.HEAD,
    use_stack_crop=True,
    single_aspect_ratio=AspectRatio(width=3, height=4),
)

SPORTS_CONFIG = ReframeConfig(
    object_kind=ObjectKind.BALL,
    prob_threshold=0.15,
    smooth_percentage=5.0,
    smooth_duration=0.3,
    max_zoom_factor=1.5,
)
