"""Replay a recorded AR session through the speaker pipeline and dump JSON summaries."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from functools import partial
from pathlib import Path

import numpy as np

from roomscan.core.analytics.pipeline import SpeakerPipeline
from roomscan.core.config.settings import (
    load_settings,
    resolver_config_from_settings,
    speaker_width_m,
    triangulator_from_settings,
)
from roomscan.core.detectors.decoder import decode, resolve_labels
from roomscan.core.frame_sources.base import RecordedFrame, RecordingSource
from roomscan.core.scan_guide import ScanGuide
from roomscan.core.trackers.simple_tracker import SimpleTracker

logger = logging.getLogger(__name__)


class _RecordedTensorDetector:
    """Decodes the detector output stored with each recorded frame."""

    def __init__(self, labels: list[str], confidence: float, iou_threshold: float) -> None:
        self.labels = labels
        self.confidence = confidence
        self.iou_threshold = iou_threshold
        self.current: RecordedFrame | None = None

    def detect(self, frame):
        if self.current is None or self.current.tensor is None:
            return []
        return decode(self.current.tensor, self.labels, self.confidence, self.iou_threshold)


def _to_jsonable(obj):
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    return obj


def run(args) -> list[dict]:
    settings = load_settings()
    source = RecordingSource(args.input)
    if args.mock:
        labels = resolve_labels(None, args.labels or settings.labels_path, 0)
        detector = _RecordedTensorDetector(labels, args.conf or settings.confidence, settings.nms_iou)
    else:
        from roomscan.core.detectors.yolo import YoloTensorDetector

        detector = YoloTensorDetector(
            args.model or settings.model_name,
            input_size=settings.input_size,
            labels_path=args.labels or settings.labels_path,
            confidence=args.conf or settings.confidence,
            iou_threshold=settings.nms_iou,
        )

    width_cm = args.speaker_width_cm
    pipeline = SpeakerPipeline(
        detector=detector,
        tracker=SimpleTracker(merge_distance=settings.merge_distance_m),
        resolver_config=resolver_config_from_settings(settings),
        detect_every_n=settings.detect_every_n,
        speaker_width_m=width_cm / 100.0 if width_cm else speaker_width_m(settings),
        track_timeout_s=settings.track_timeout_s,
        image_rotation=source.view.rotation,
        triangulator_factory=(
            partial(triangulator_from_settings, settings) if settings.triangulation_enabled else None
        ),
    )
    guide = ScanGuide()

    outputs: list[dict] = []
    try:
        while True:
            frame = source.read()
            if frame is None:
                break
            image = frame.image
            if image is None and args.mock:
                image = np.zeros((source.view.image_height, source.view.image_width, 3), np.uint8)
            if isinstance(detector, _RecordedTensorDetector):
                detector.current = frame
            summary = pipeline.process(frame, image)
            guide.on_frame(frame.pose, frame.timestamp_ns, payload=summary.frame_id)
            record = _to_jsonable(summary)
            record["scan"] = {
                "state": guide.state.value,
                "target_yaw": guide.target_yaw,
                "progress": guide.progress,
                "captured": len(guide.samples),
            }
            outputs.append(record)
            if args.max_frames and len(outputs) >= args.max_frames:
                break
    finally:
        source.close()

    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(outputs, f, indent=2)
    logger.info("Wrote %d frame summaries to %s", len(outputs), out_path)
    logger.info(
        "Scan captured %d headings at frames %s", len(guide.samples), [s.payload for s in guide.samples]
    )
    return outputs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay a recorded AR session")
    parser.add_argument("--input", required=True, help="Path to the recording JSON")
    parser.add_argument("--output", default="out/summaries.json", help="Where to save JSON output")
    parser.add_argument("--model", default=None, help="Overrides model_name from settings")
    parser.add_argument("--labels", default=None, help="Label file, one class per line")
    parser.add_argument("--conf", type=float, default=None)
    parser.add_argument("--speaker-width-cm", type=float, default=None)
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument(
        "--mock", action="store_true", help="Decode the recorded tensors (no model download)"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run(build_parser().parse_args(argv))


if __name__ == "__main__":
    main()
