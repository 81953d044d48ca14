"""
Ball tracking across frames.

The ball detector misses frames regularly (motion blur, occlusion). The
tracker keeps the most confident ball per frame and bridges short gaps by
extrapolating the recent trajectory.
"""

import logging
from collections import deque
from typing import Optional, Sequence

from portrait_crop.models import Detection, ObjectKind, Rect

logger = logging.getLogger(__name__)

# Positions used for extrapolation.
TRACK_LENGTH = 3


class BallTracker:
    """Select or predict the ball box for each frame of one job."""

    def __init__(self):
        self._track: deque[Rect] = deque(maxlen=TRACK_LENGTH)

    def reset(self) -> None:
        self._track.clear()

    def select(self, detections: Sequence[Detection], is_cut: bool = False) -> Optional[Detection]:
        """
        Pick the ball for this frame.

        Args:
            detections: Filtered ball detections of the frame.
            is_cut: Whether the frame starts a new shot.

        Returns:
            The most confident ball, a predicted ball (confidence 0) when
            none was detected, or None when there is too little history
            to predict.
        """
        if is_cut:
            self.reset()

        balls = [d for d in detections if d.label == ObjectKind.BALL]
        if balls:
            best = max(balls, key=lambda d: d.confidence)
            self._track.append(best.bbox)
            return best

        predicted = self.predict()
        if predicted is None:
            return None

        self._track.append(predicted)
        logger.debug(f"Ball predicted at ({predicted.cx:.3f}, {predicted.cy:.3f})")
        return Detection(label=ObjectKind.BALL, confidence=0.0, bbox=predicted)

    def predict(self) -> Optional[Rect]:
        """Second-order extrapolation of the center; size of the last box."""
        if len(self._track) < TRACK_LENGTH:
            return None

        p0, p1, p2 = self._track
        cx = 3 * p2.cx - 3 * p1.cx + p0.cx
        cy = 3 * p2.cy - 3 * p1.cy + p0.cy

        width = min(p2.width, 1.0)
        height = min(p2.height, 1.0)
        x = min(max(cx - width / 2, 0.0), 1.0 - width)
        y = min(max(cy - height / 2, 0.0), 1.0 - height)
        return Rect(x=x, y=y, width=width, height=height)

    def __len__(self) -> int:
        return len(self._track)
