"""
Configuration factory for portrait crop presets.

Builds a ReframeConfig from a named preset and optional environment
variable overrides.
"""

import logging
import os
from typing import Callable, Optional

from portrait_crop.config import (
    ReframeConfig,
    RESPONSIVE_CONFIG,
    STABLE_CONFIG,
    PODCAST_CONFIG,
    SPORTS_CONFIG,
)
from portrait_crop.models import AspectRatio, ObjectKind

logger = logging.getLogger(__name__)

ENV_PREFIX = "PORTRAIT_CROP_"

PRESETS: dict[str, ReframeConfig] = {
    "default": ReframeConfig(),
    "responsive": RESPONSIVE_CONFIG,
    "stable": STABLE_CONFIG,
    "podcast": PODCAST_CONFIG,
    "sports": SPORTS_CONFIG,
}


def get_preset_config(preset: str) -> ReframeConfig:
    """
    Get a copy of a preset configuration.

    Unknown names fall back to the default configuration.
    """
    base = PRESETS.get(preset)
    if base is None:
        logger.warning(f"Unknown preset '{preset}', using default")
        base = PRESETS["default"]
    return base.model_copy(deep=True)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value}")


# Environment variable suffix -> (config field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, Callable[[str], object]]] = {
    "OBJECT": ("object_kind", ObjectKind),
    "PROB_THRESHOLD": ("prob_threshold", float),
    "AREA_THRESHOLD": ("area_threshold", float),
    "DEVICE": ("device", str),
    "MODEL": ("model", str),
    "USE_STACK_CROP": ("use_stack_crop", _parse_bool),
    "SMOOTH_PERCENTAGE": ("smooth_percentage", float),
    "SMOOTH_DURATION": ("smooth_duration", float),
    "USE_SIMPLE_SMOOTHING": ("use_simple_smoothing", _parse_bool),
    "CUT_SIMILARITY": ("cut_similarity", float),
    "CUT_START": ("cut_start", float),
    "ASPECT": ("output_aspect_ratio", AspectRatio.from_string),
    "OUTPUT_WIDTH": ("output_width", int),
}


def get_config_from_env(environ: Optional[dict[str, str]] = None) -> ReframeConfig:
    """
    Get configuration from environment variables.

    Environment variables:
        PORTRAIT_CROP_MODE: preset name ("default", "responsive", "stable",
            "podcast" or "sports")
        PORTRAIT_CROP_<FIELD>: per-field overrides, e.g.
            PORTRAIT_CROP_SMOOTH_DURATION=2.0 or PORTRAIT_CROP_ASPECT=4:5

    Invalid values are logged and ignored.

    Returns:
        Configured ReframeConfig instance.
    """
    if environ is None:
        environ = dict(os.environ)

    mode = environ.get(f"{ENV_PREFIX}MODE", "default").lower()
    config = get_preset_config(mode)

    updates: dict[str, object] = {}
    for suffix, (field, parser) in _ENV_OVERRIDES.items():
        raw = environ.get(f"{ENV_PREFIX}{suffix}")
        if raw is None or raw == "":
            continue
        try:
            updates[field] = parser(raw)
        except ValueError:
            logger.warning(f"Invalid {ENV_PREFIX}{suffix}: {raw}")

    if not updates:
        return config

    # Re-validate so that field bounds and cross-field checks apply.
    try:
        return ReframeConfig.model_validate({**config.model_dump(), **updates})
    except ValueError as e:
        logger.warning(f"Ignoring environment overrides: {e}")
        return config
