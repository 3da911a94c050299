"""Ultralytics YOLO model runner producing raw tensors for `decode`.

The runner uses Ultralytics' `AutoBackend` so `.pt`, ONNX and TFLite exports
all go through the same raw forward pass. Post-processing (class selection and
NMS) is done by `roomscan.core.detectors.decoder`, not by Ultralytics.
"""

from __future__ import annotations

import importlib
import logging
import time
from contextlib import nullcontext
from pathlib import Path
from typing import Any

import cv2
import numpy as np
from ultralytics.nn.autobackend import AutoBackend

from roomscan.core.detectors.decoder import (
    CONFIDENCE_THRESHOLD,
    IOU_THRESHOLD,
    decode,
    resolve_labels,
)
from roomscan.core.types import BoundingBox

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "yolo11n.pt"


class YoloTensorDetector:
    """Speaker detector wrapper around an Ultralytics backend.

    Frames are stretched (not letterboxed) to a square `input_size` input, so
    decoded boxes are normalized against the full frame.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        input_size: int = 640,
        labels_path: str | Path | None = None,
        confidence: float = CONFIDENCE_THRESHOLD,
        iou_threshold: float = IOU_THRESHOLD,
        backend: Any | None = None,
    ) -> None:
        """Create a detector.

        Args:
            model_name: Model path/name understood by Ultralytics.
            input_size: Square model input side in pixels.
            labels_path: Optional label file used when the model has no names.
            confidence: Class confidence threshold for decoding.
            iou_threshold: NMS IoU threshold for decoding.
            backend: Pre-built callable backend (tests); built from `model_name` otherwise.
        """

        if input_size <= 0:
            raise ValueError("input_size must be > 0")
        self.model_name = model_name
        self.input_size = int(input_size)
        self.confidence = float(confidence)
        self.iou_threshold = float(iou_threshold)
        self.last_inference_ms = 0.0

        try:
            self._torch: Any | None = importlib.import_module("torch")
        except ModuleNotFoundError:
            self._torch = None

        if backend is None:
            device = self._torch.device("cpu") if self._torch is not None else "cpu"
            backend = AutoBackend(model_name, device=device, verbose=False)
        self.backend = backend
        self.labels = resolve_labels(
            getattr(backend, "names", None), labels_path, num_classes=0
        )

    def _infer_ctx(self):
        if self._torch is not None and hasattr(self._torch, "inference_mode"):
            return self._torch.inference_mode()
        return nullcontext()

    def preprocess(self, frame: np.ndarray) -> np.ndarray:
        """BGR uint8 frame -> float32 `[1, 3, S, S]` RGB batch scaled to 0..1."""

        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        square = cv2.resize(frame, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR)
        rgb = cv2.cvtColor(square, cv2.COLOR_BGR2RGB)
        chw = rgb.astype(np.float32).transpose(2, 0, 1) / 255.0
        return np.ascontiguousarray(chw[None, ...])

    def forward(self, batch: np.ndarray) -> np.ndarray:
        """Run the backend and return the raw output as a numpy array."""

        inp: Any = batch
        if self._torch is not None:
            inp = self._torch.from_numpy(batch)
        with self._infer_ctx():
            out = self.backend(inp)
        if isinstance(out, (list, tuple)):
            out = out[0]
        if hasattr(out, "cpu"):
            out = out.cpu()
        return out.numpy() if hasattr(out, "numpy") else np.asarray(out)

    def detect(self, frame: np.ndarray) -> list[BoundingBox]:
        """Detect objects in a frame; boxes are normalized to the frame size."""

        if frame is None or frame.size == 0:
            return []
        batch = self.preprocess(frame)
        t0 = time.perf_counter()
        raw = np.asarray(self.forward(batch), dtype=np.float32)
        self.last_inference_ms = (time.perf_counter() - t0) * 1000.0

        if raw.ndim == 3 and raw.shape[0] == 1:
            raw = raw[0]
        if raw.ndim != 2 or raw.shape[0] <= 4:
            logger.debug("Unexpected model output shape %s", raw.shape)
            return []
        # Exported .pt/ONNX heads emit pixel units; TFLite heads are already normalized.
        if raw.shape[1] > 0 and float(np.max(raw[:4])) > 1.5:
            raw = raw.copy()
            raw[:4] /= float(self.input_size)
        return decode(raw, self.labels, self.confidence, self.iou_threshold)

    def warm_up(self) -> None:
        """Run one blank frame through the model."""

        self.detect(np.zeros((self.input_size, self.input_size, 3), dtype=np.uint8))
