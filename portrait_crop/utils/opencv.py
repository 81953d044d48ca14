"""
OpenCV video I/O with FFmpeg warning suppression.

Decoding through OpenCV's FFmpeg backend prints AV1 and hardware
acceleration warnings that are harmless; they are filtered here so that
only real errors reach stderr.
"""

import contextlib
import io
import logging
import re
import sys
from typing import Iterator, Optional

import cv2
import numpy as np

from portrait_crop.exceptions import VideoSourceError
from portrait_crop.models import VideoMeta

logger = logging.getLogger(__name__)

# Patterns for known benign warnings that should be filtered
BENIGN_WARNING_PATTERNS = [
    r"\[av1 @ .*\] Your platform doesn't suppport hardware accelerated AV1 decoding",
    r"\[av1 @ .*\] Failed to get pixel format",
    r"\[av1 @ .*\] Missing Sequence Header",
    r"\[.*\] .* does not support hardware acceleration",
    r"\[.*\] .* hardware acceleration disabled",
]


def filter_benign_warnings(stderr: str) -> tuple[str, list[str]]:
    """
    Split captured stderr into real output and benign warnings.

    Returns:
        Tuple of (filtered_stderr, filtered_warnings_list).
    """
    kept = []
    dropped = []
    for line in stderr.split("\n"):
        if any(re.search(p, line, re.IGNORECASE) for p in BENIGN_WARNING_PATTERNS):
            dropped.append(line)
        else:
            kept.append(line)
    return "\n".join(kept), dropped


@contextlib.contextmanager
def suppress_ffmpeg_warnings():
    """
    Context manager to suppress FFmpeg warnings from OpenCV operations.

    Temporarily redirects stderr and writes back everything that is not
    a known benign warning.
    """
    original_stderr = sys.stderr
    stderr_capture = io.StringIO()

    try:
        sys.stderr = stderr_capture
        yield
    finally:
        sys.stderr = original_stderr

        captured = stderr_capture.getvalue()
        if captured:
            filtered, warnings = filter_benign_warnings(captured)
            if warnings:
                logger.debug(f"Suppressed {len(warnings)} FFmpeg warnings from OpenCV")
            if filtered.strip():
                original_stderr.write(filtered)


def open_video(video_path: str) -> cv2.VideoCapture:
    """
    Open a video file with suppressed FFmpeg warnings.

    Raises:
        VideoSourceError: If OpenCV cannot open the file.
    """
    with suppress_ffmpeg_warnings():
        cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        cap.release()
        raise VideoSourceError(f"Failed to open video: {video_path}")
    return cap


def read_video_meta(video_path: str) -> VideoMeta:
    """Extract video metadata using OpenCV."""
    cap = open_video(video_path)
    try:
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
    finally:
        cap.release()

    if width <= 0 or height <= 0 or fps <= 0:
        raise VideoSourceError(
            f"Unusable video properties for {video_path}: {width}x{height} @ {fps} fps"
        )

    return VideoMeta(
        width=width,
        height=height,
        fps=fps,
        frame_count=max(frame_count, 0),
        input_path=video_path,
    )


def iter_frames(video_path: str, limit: Optional[int] = None) -> Iterator[tuple[int, np.ndarray]]:
    """Yield (index, BGR frame) pairs in decoding order."""
    cap = open_video(video_path)
    try:
        index = 0
        while limit is None or index < limit:
            with suppress_ffmpeg_warnings():
                ret, frame = cap.read()
            if not ret:
                break
            yield index, frame
            index += 1
    finally:
        cap.release()
