"""
Per-job reframing pipeline.

A ReframeJob consumes one ordered stream of frames (detections plus an
optional frame image or similarity score) and emits one FrameResult per
frame. Each job owns its own planner, cut detector, ball tracker and
smoother; nothing is shared between jobs.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

import numpy as np

from portrait_crop.ball_tracker import BallTracker
from portrait_crop.config import ReframeConfig
from portrait_crop.crop_planner import CropPlanner
from portrait_crop.cut_detector import CutDetector
from portrait_crop.detection_filter import RawDetection, filter_detections, parse_detections
from portrait_crop.exceptions import FrameOrderError
from portrait_crop.models import (
    CropPlan,
    CropTimeline,
    Detection,
    FrameResult,
    ObjectKind,
    VideoMeta,
)
from portrait_crop.smoother import TemporalSmoother
from portrait_crop.utils.opencv import iter_frames, read_video_meta

logger = logging.getLogger(__name__)

# Seconds between cancellation checks while blocked on the queue.
_QUEUE_POLL_INTERVAL = 0.1

_END_OF_STREAM = object()


@dataclass
class FrameInput:
    """Everything the engine receives for one frame."""

    index: int
    detections: Sequence[RawDetection] = field(default_factory=list)
    frame: Optional[np.ndarray] = None
    similarity: Optional[float] = None
    is_graphic: bool = False


@dataclass
class _PreparedFrame:
    source: FrameInput
    detections: list[Detection]


@dataclass
class _ProducerError:
    error: BaseException


class ReframeJob:
    """
    Reframing state for one video.

    Args:
        config: Job configuration.
        video: Metadata of the source video (frame size and rate).
        pixel_boxes: Whether raw detection boxes are in pixels instead of
            normalized coordinates.
    """

    def __init__(
        self,
        config: ReframeConfig,
        video: VideoMeta,
        pixel_boxes: bool = False,
    ):
        self.config = config
        self.video = video
        self.pixel_size = (video.width, video.height) if pixel_boxes else None

        self.planner = CropPlanner(config, video.width, video.height)
        self.cut_detector = CutDetector.from_config(config)
        self.smoother = TemporalSmoother(config, video.fps)
        self.ball_tracker = BallTracker() if config.object_kind == ObjectKind.BALL else None

        self._last_index: Optional[int] = None
        self.frames_processed = 0
        self.plan_changes = 0

    def prepare(self, frame_input: FrameInput) -> _PreparedFrame:
        """Validate and filter detections. Pure; may run ahead of the job."""
        detections = parse_detections(frame_input.detections, self.pixel_size)
        kept = filter_detections(
            detections,
            self.config.prob_threshold,
            self.config.area_threshold,
            kind=self.config.object_kind,
        )
        return _PreparedFrame(source=frame_input, detections=kept)

    def process_frame(
        self,
        index: int,
        detections: Sequence[RawDetection],
        frame: Optional[np.ndarray] = None,
        similarity: Optional[float] = None,
        is_graphic: bool = False,
    ) -> FrameResult:
        """
        Advance the job by one frame.

        Raises:
            FrameOrderError: If ``index`` does not follow the previous frame.
            InvalidDetectionError: On malformed detections.
            InvalidSimilarityError: On a similarity outside [0, 1].
        """
        frame_input = FrameInput(
            index=index,
            detections=detections,
            frame=frame,
            similarity=similarity,
            is_graphic=is_graphic,
        )
        return self._advance(self.prepare(frame_input))

    def _advance(self, prepared: _PreparedFrame) -> FrameResult:
        source = prepared.source
        index = source.index
        if self._last_index is not None and index <= self._last_index:
            raise FrameOrderError(
                f"Frame {index} received after frame {self._last_index}"
            )
        self._last_index = index

        if source.frame is not None:
            cut = self.cut_detector.update(source.frame)
        else:
            cut = self.cut_detector.update_score(source.similarity)

        candidate = self._candidate(prepared.detections, cut.is_cut, source.is_graphic)
        step = self.smoother.update(candidate, cut, index)

        self.frames_processed += 1
        if step.changed and self.frames_processed > 1:
            self.plan_changes += 1

        if self.config.debug:
            logger.debug(
                f"Frame {index}: {len(prepared.detections)} detection(s), "
                f"cut={cut.is_cut} ({cut.similarity_score:.3f}), {step.transition.value}"
            )

        return FrameResult(
            index=index,
            timestamp=index / self.video.fps,
            plan=step.plan,
            candidate=candidate,
            cut=cut,
            promoted=step.changed,
        )

    def _candidate(self, detections: list[Detection], is_cut: bool, is_graphic: bool) -> CropPlan:
        if self.ball_tracker is None:
            return self.planner.plan(detections, is_graphic)

        ball = self.ball_tracker.select(detections, is_cut)
        if ball is not None:
            return self.planner.plan([ball], is_graphic)

        # Lost ball: hold the current framing until the next shot.
        stable = self.smoother.stable_plan
        if stable is not None and not is_cut:
            return stable
        return self.planner.plan([], is_graphic)

    def run(
        self,
        frames: Iterable[FrameInput],
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[FrameResult]:
        """Process frames in order, stopping early when cancelled."""
        for frame_input in frames:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Job cancelled after {self.frames_processed} frames")
                return
            yield self._advance(self.prepare(frame_input))

    def run_threaded(
        self,
        frames: Iterable[FrameInput],
        queue_size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[FrameResult]:
        """
        Like run(), with frame production and detection filtering on a
        producer thread feeding a bounded queue.

        Exceptions raised by the producer are re-raised here. Closing the
        generator or setting ``cancel_event`` stops the producer.
        """
        frame_queue: queue.Queue = queue.Queue(maxsize=queue_size or self.config.queue_size)
        stop = threading.Event()

        def offer(item: Any) -> bool:
            while not stop.is_set():
                try:
                    frame_queue.put(item, timeout=_QUEUE_POLL_INTERVAL)
                    return True
                except queue.Full:
                    continue
            return False

        def produce():
            try:
                for frame_input in frames:
                    if not offer(self.prepare(frame_input)):
                        return
            except Exception as e:
                offer(_ProducerError(e))
                return
            offer(_END_OF_STREAM)

        producer = threading.Thread(target=produce, name="reframe-producer", daemon=True)
        producer.start()

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"Job cancelled after {self.frames_processed} frames")
                    return
                try:
                    item = frame_queue.get(timeout=_QUEUE_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if item is _END_OF_STREAM:
                    return
                if isinstance(item, _ProducerError):
                    raise item.error
                yield self._advance(item)
        finally:
            stop.set()
            producer.join(timeout=1.0)


def reframe_video(
    video_path: str,
    detect_fn: Callable[[np.ndarray], Sequence[RawDetection]],
    config: Optional[ReframeConfig] = None,
    pixel_boxes: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> CropTimeline:
    """
    Compute the crop timeline of a video file.

    Args:
        video_path: Path to source video.
        detect_fn: Detector collaborator; maps a BGR frame to raw
            detections.
        config: Configuration options. Uses defaults if not provided.
        pixel_boxes: Whether ``detect_fn`` returns pixel boxes.
        cancel_event: Stops the job when set.

    Returns:
        CropTimeline with one FrameResult per decoded frame.
    """
    if config is None:
        config = ReframeConfig()

    video = read_video_meta(video_path)
    logger.info(
        f"Reframing {video_path}: {video.width}x{video.height} @ {video.fps:.2f} fps, "
        f"{video.frame_count} frames"
    )

    def frames() -> Iterator[FrameInput]:
        for index, image in iter_frames(video_path):
            yield FrameInput(index=index, detections=detect_fn(image), frame=image)

    job = ReframeJob(config, video, pixel_boxes=pixel_boxes)
    timeline = CropTimeline(video=video, output_aspect_ratio=config.output_aspect_ratio)
    timeline.frames.extend(job.run_threaded(frames(), cancel_event=cancel_event))

    logger.info(
        f"Processed {job.frames_processed} frames: {timeline.cut_count} cuts, "
        f"{job.plan_changes} plan changes"
    )
    return timeline
