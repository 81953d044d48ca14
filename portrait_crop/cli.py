#!/usr/bin/env python3
"""
CLI interface for the portrait crop engine.

Usage:
    portrait-crop --detections detections.jsonl --input video.mp4 --output-plan plan.json

    # Or using Python module:
    python -m portrait_crop.cli --detections detections.jsonl --width 1920 --height 1080 --fps 30
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterator, Optional

from portrait_crop.compositor import render_timeline
from portrait_crop.config import ReframeConfig
from portrait_crop.config_factory import PRESETS, get_config_from_env, get_preset_config
from portrait_crop.exceptions import InvalidDetectionError
from portrait_crop.models import AspectRatio, CropTimeline, ObjectKind, VideoMeta
from portrait_crop.pipeline import FrameInput, ReframeJob
from portrait_crop.utils.opencv import iter_frames, read_video_meta


def setup_logging(verbose: bool = False, json_logs: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO

    if json_logs:
        # JSON format for integration with other tools
        format_str = json.dumps({
            "time": "%(asctime)s",
            "level": "%(levelname)s",
            "module": "%(name)s",
            "message": "%(message)s",
        })
    else:
        format_str = "%(asctime)s [%(levelname)s] %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_aspect_ratio(s: str) -> AspectRatio:
    """Parse aspect ratio from string like '9:16' or '9x16'."""
    return AspectRatio.from_string(s)


def load_detection_lines(path: str) -> dict[int, FrameInput]:
    """
    Read a JSON-lines detection file.

    Each line holds ``frame``, ``detections`` and optionally ``similarity``
    and ``graphic``. Blank lines are skipped.
    """
    inputs: dict[int, FrameInput] = {}
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
                index = int(record["frame"])
                inputs[index] = FrameInput(
                    index=index,
                    detections=record.get("detections", []),
                    similarity=record.get("similarity"),
                    is_graphic=bool(record.get("graphic", False)),
                )
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise InvalidDetectionError(f"{path}:{line_no}: {e}") from e
    return inputs


def iter_frame_inputs(
    inputs: dict[int, FrameInput],
    video_path: Optional[str] = None,
) -> Iterator[FrameInput]:
    """
    Yield frame inputs in index order.

    With a video, every decoded frame is yielded; frames without a
    detection line get no detections, and the decoded image drives cut
    detection unless the line carries a similarity score.
    """
    if video_path is None:
        for index in sorted(inputs):
            yield inputs[index]
        return

    for index, image in iter_frames(video_path):
        frame_input = inputs.get(index) or FrameInput(index=index)
        if frame_input.similarity is None:
            frame_input.frame = image
        yield frame_input


def build_config(parsed: argparse.Namespace) -> ReframeConfig:
    """Preset or environment configuration with CLI overrides applied."""
    if parsed.preset is not None:
        config = get_preset_config(parsed.preset)
    else:
        config = get_config_from_env()

    overrides = {}
    if parsed.object is not None:
        overrides["object_kind"] = ObjectKind(parsed.object)
    if parsed.aspect is not None:
        overrides["output_aspect_ratio"] = parsed.aspect
    if parsed.single_aspect is not None:
        overrides["single_aspect_ratio"] = parsed.single_aspect
    if parsed.stack:
        overrides["use_stack_crop"] = True
    if parsed.prob_threshold is not None:
        overrides["prob_threshold"] = parsed.prob_threshold
    if parsed.area_threshold is not None:
        overrides["area_threshold"] = parsed.area_threshold
    if parsed.smooth_percentage is not None:
        overrides["smooth_percentage"] = parsed.smooth_percentage
    if parsed.smooth_duration is not None:
        overrides["smooth_duration"] = parsed.smooth_duration
    if parsed.simple_smoothing:
        overrides["use_simple_smoothing"] = True
    if parsed.cut_similarity is not None:
        overrides["cut_similarity"] = parsed.cut_similarity
        if parsed.cut_start is None:
            # cut_start may never sit below cut_similarity.
            overrides["cut_start"] = max(config.cut_start, parsed.cut_similarity)
    if parsed.cut_start is not None:
        overrides["cut_start"] = parsed.cut_start
    if parsed.keep_graphic:
        overrides["keep_graphic"] = True
    if parsed.output_width is not None:
        overrides["output_width"] = parsed.output_width
    if parsed.verbose:
        overrides["debug"] = True

    if not overrides:
        return config
    return ReframeConfig.model_validate({**config.model_dump(), **overrides})


def main(args: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Portrait crop planning from per-frame detections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Plan crops for a video, using its frames for cut detection
  %(prog)s --detections heads.jsonl --input video.mp4 --output-plan plan.json

  # Plan from detections and similarity scores only
  %(prog)s --detections heads.jsonl --width 1920 --height 1080 --fps 30

  # Podcast layout with stacked crops, rendered with OpenCV
  %(prog)s --detections heads.jsonl --input video.mp4 --preset podcast --render out.mp4
        """,
    )

    # Input/output
    parser.add_argument(
        "--detections", "-d",
        required=True,
        help="JSON-lines file with per-frame detections",
    )
    parser.add_argument(
        "--input", "-i",
        help="Path to source video (frame size, rate and cut detection)",
    )
    parser.add_argument("--width", type=int, help="Frame width when no video is given")
    parser.add_argument("--height", type=int, help="Frame height when no video is given")
    parser.add_argument("--fps", type=float, help="Frame rate when no video is given")
    parser.add_argument(
        "--pixel-boxes",
        action="store_true",
        help="Detection boxes are in pixels instead of normalized coordinates",
    )
    parser.add_argument(
        "--output-plan", "-o",
        help="Save the crop timeline to a JSON file",
    )
    parser.add_argument(
        "--render",
        help="Render the reframed video to this path (requires --input)",
    )

    # Presets and configuration
    parser.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        help="Configuration preset (default: from PORTRAIT_CROP_MODE)",
    )
    parser.add_argument(
        "--object",
        choices=[k.value for k in ObjectKind],
        help="Object kind to track (default: head)",
    )
    parser.add_argument(
        "--aspect", "-a",
        type=parse_aspect_ratio,
        help="Output aspect ratio (default: 9:16)",
    )
    parser.add_argument(
        "--single-aspect",
        type=parse_aspect_ratio,
        help="Aspect ratio of single crops (default: output ratio)",
    )
    parser.add_argument(
        "--stack",
        action="store_true",
        help="Allow stacked crops for separated subjects",
    )
    parser.add_argument("--prob-threshold", type=float, help="Minimum detection confidence (default: 0.25)")
    parser.add_argument("--area-threshold", type=float, help="Minimum box area fraction (default: 0.001)")
    parser.add_argument("--smooth-percentage", type=float, help="Jitter tolerance in percent (default: 10)")
    parser.add_argument("--smooth-duration", type=float, help="Smoothing window in seconds (default: 1.5)")
    parser.add_argument(
        "--simple-smoothing",
        action="store_true",
        help="Adopt differing plans immediately",
    )
    parser.add_argument("--cut-similarity", type=float, help="Cut threshold (default: 0.4)")
    parser.add_argument("--cut-start", type=float, help="Cut threshold right after a cut (default: 0.5)")
    parser.add_argument(
        "--keep-graphic",
        action="store_true",
        help="Keep the whole frame for graphic frames without subjects",
    )
    parser.add_argument("--output-width", type=int, help="Rendered output width (default: 1080)")

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs in JSON format",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress all output except errors",
    )

    parsed = parser.parse_args(args)
    if (
        parsed.cut_similarity is not None
        and parsed.cut_start is not None
        and parsed.cut_start < parsed.cut_similarity
    ):
        parser.error("--cut-start must not be lower than --cut-similarity")

    # Setup logging
    if parsed.quiet:
        logging.basicConfig(level=logging.ERROR)
    else:
        setup_logging(parsed.verbose, parsed.json_logs)

    logger = logging.getLogger("portrait_crop.cli")

    try:
        detections_path = Path(parsed.detections)
        if not detections_path.exists():
            logger.error(f"Detections file not found: {detections_path}")
            return 1
        if parsed.render and not parsed.input:
            logger.error("--render requires --input")
            return 1

        config = build_config(parsed)

        if parsed.input:
            video = read_video_meta(parsed.input)
        elif parsed.width and parsed.height and parsed.fps:
            video = VideoMeta(width=parsed.width, height=parsed.height, fps=parsed.fps)
        else:
            logger.error("Either --input or --width, --height and --fps are required")
            return 1

        inputs = load_detection_lines(str(detections_path))
        logger.info(f"Loaded detections for {len(inputs)} frames")

        job = ReframeJob(config, video, pixel_boxes=parsed.pixel_boxes)
        timeline = CropTimeline(video=video, output_aspect_ratio=config.output_aspect_ratio)
        timeline.frames.extend(
            job.run_threaded(iter_frame_inputs(inputs, parsed.input))
        )
        logger.info(
            f"Planned {len(timeline.frames)} frames: {timeline.cut_count} cuts, "
            f"{job.plan_changes} plan changes"
        )

        if parsed.output_plan:
            timeline.to_json_file(parsed.output_plan)
            logger.info(f"Saved crop timeline to: {parsed.output_plan}")
        elif not parsed.quiet:
            print(timeline.model_dump_json(indent=2))

        if parsed.render:
            render_timeline(parsed.input, timeline, parsed.render, config.output_width)
            if not parsed.quiet:
                print(f"\nOutput file: {parsed.render}")

        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Error: {e}")
        if parsed.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
