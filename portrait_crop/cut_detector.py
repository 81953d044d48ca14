"""
Scene-cut detection from consecutive frame similarity.

Frames are reduced to a small grayscale thumbnail and an HSV histogram.
Similarity combines structural similarity of the thumbnails with the
histogram intersection; a collapse in either signals a hard cut.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np
from skimage.metrics import structural_similarity as ssim

from portrait_crop.config import ReframeConfig
from portrait_crop.exceptions import InvalidSimilarityError
from portrait_crop.models import CutDecision

logger = logging.getLogger(__name__)

# Thumbnail size (width, height) used for comparisons.
THUMBNAIL_SIZE = (160, 90)


@dataclass
class FrameSignature:
    """Reduced representation of one frame."""

    thumbnail: np.ndarray
    histogram: np.ndarray


def compute_signature(frame: np.ndarray, size: tuple[int, int] = THUMBNAIL_SIZE) -> FrameSignature:
    """
    Reduce a BGR (or grayscale) frame to a FrameSignature.

    Frames must be non-empty; that is the caller's responsibility.
    """
    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)

    small = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)
    gray = cv2.cvtColor(small, cv2.COLOR_BGR2GRAY).astype(np.float64)

    # HSV histograms, one normalized block per channel.
    hsv = cv2.cvtColor(small, cv2.COLOR_BGR2HSV)
    blocks = []
    for channel, upper in ((0, 180), (1, 256), (2, 256)):
        hist = cv2.calcHist([hsv], [channel], None, [32], [0, upper]).flatten()
        blocks.append(hist / (hist.sum() + 1e-6))

    return FrameSignature(thumbnail=gray, histogram=np.stack(blocks))


def structural_similarity(first: np.ndarray, second: np.ndarray) -> float:
    """Mean SSIM of two grayscale images of the same size, clipped to [0, 1]."""
    score = ssim(
        first,
        second,
        data_range=255,
        gaussian_weights=True,
        sigma=1.5,
        use_sample_covariance=False,
    )
    return float(np.clip(score, 0.0, 1.0))


def histogram_similarity(first: np.ndarray, second: np.ndarray) -> float:
    """Mean per-channel histogram intersection in [0, 1]."""
    overlap = [
        cv2.compareHist(
            a.astype(np.float32), b.astype(np.float32), cv2.HISTCMP_INTERSECT
        )
        for a, b in zip(first, second)
    ]
    return float(np.clip(np.mean(overlap), 0.0, 1.0))


def frame_similarity(previous: FrameSignature, current: FrameSignature) -> float:
    """Similarity score in [0, 1]; low when structure or colors collapse."""
    structure = structural_similarity(previous.thumbnail, current.thumbnail)
    colors = histogram_similarity(previous.histogram, current.histogram)
    return min(structure, colors)


class CutDetector:
    """
    Per-job scene-cut detector.

    A frame is a cut when its similarity to the previous frame drops below
    ``cut_similarity``, or below ``cut_start`` within ``grace_frames``
    frames after the previous hard cut. Only hard cuts and the first frame
    open a grace window. The first frame is always a cut.
    """

    def __init__(
        self,
        cut_similarity: float = 0.4,
        cut_start: float = 0.5,
        grace_frames: int = 5,
        thumbnail_size: tuple[int, int] = THUMBNAIL_SIZE,
    ):
        self.cut_similarity = cut_similarity
        self.cut_start = cut_start
        self.grace_frames = grace_frames
        self.thumbnail_size = thumbnail_size

        self._previous: Optional[FrameSignature] = None
        self._started = False
        self._frames_since_cut: Optional[int] = None
        self.total_cuts = 0

    @classmethod
    def from_config(cls, config: ReframeConfig) -> "CutDetector":
        return cls(
            cut_similarity=config.cut_similarity,
            cut_start=config.cut_start,
            grace_frames=config.cut_grace_frames,
        )

    def signature(self, frame: np.ndarray) -> FrameSignature:
        return compute_signature(frame, self.thumbnail_size)

    @staticmethod
    def similarity(previous: FrameSignature, current: FrameSignature) -> float:
        return frame_similarity(previous, current)

    def decide(self, similarity: float) -> CutDecision:
        """
        Apply the thresholds to a similarity score for the next frame.

        Raises:
            InvalidSimilarityError: If the score is not within [0, 1].
        """
        if math.isnan(similarity) or not 0.0 <= similarity <= 1.0:
            raise InvalidSimilarityError(f"Similarity must be within [0, 1], got {similarity}")

        if self._frames_since_cut is not None:
            self._frames_since_cut += 1
        in_grace = (
            self._frames_since_cut is not None
            and self._frames_since_cut <= self.grace_frames
        )

        hard_cut = similarity < self.cut_similarity
        is_cut = hard_cut or (in_grace and similarity < self.cut_start)
        if hard_cut:
            self._mark_cut()
        elif is_cut:
            # Counted, but the grace window stays anchored to the hard cut.
            self.total_cuts += 1
        if is_cut:
            logger.debug(f"Scene cut (similarity {similarity:.3f})")
        return CutDecision(is_cut=is_cut, similarity_score=similarity)

    def update(self, frame: np.ndarray) -> CutDecision:
        """Compare a frame with the previous one passed to this method."""
        current = self.signature(frame)
        previous = self._previous
        self._previous = current

        if not self._started:
            return self._first_frame()
        if previous is None:
            return self.update_score(None)
        return self.decide(frame_similarity(previous, current))

    def update_score(self, similarity: Optional[float]) -> CutDecision:
        """
        Advance with a score computed by an external comparator.

        The score of the first frame is ignored. ``None`` means no
        information and never produces a cut after the first frame.
        """
        if not self._started:
            return self._first_frame()
        if similarity is None:
            if self._frames_since_cut is not None:
                self._frames_since_cut += 1
            return CutDecision(is_cut=False, similarity_score=1.0)
        return self.decide(similarity)

    def reset(self) -> None:
        """Forget the previous frame; the next frame counts as the first."""
        self._previous = None
        self._started = False
        self._frames_since_cut = None

    def _first_frame(self) -> CutDecision:
        self._started = True
        self._mark_cut()
        return CutDecision(is_cut=True, similarity_score=0.0)

    def _mark_cut(self) -> None:
        self._frames_since_cut = 0
        self.total_cuts += 1
