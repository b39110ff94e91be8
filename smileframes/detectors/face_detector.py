from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

import numpy as np

from smileframes.errors import DetectionUnavailable
from smileframes.utils.image import crop_with_margin
from smileframes.utils.logging import setup_logger


logger = setup_logger()


@dataclass
class DetectedFace:
    bbox_xywh: Tuple[int, int, int, int]
    det_score: float
    landmarks: Optional[np.ndarray]  # (68, 2) in analysis-raster pixels
    expressions: Dict[str, float] = field(default_factory=dict)

    @property
    def happy(self) -> float:
        return float(np.clip(self.expressions.get("happy", 0.0), 0.0, 1.0))


class FaceDetector(Protocol):
    def initialize(self) -> None: ...

    def detect(self, img_bgr: np.ndarray) -> List[DetectedFace]: ...


def normalize_expressions(raw: Dict[str, float]) -> Dict[str, float]:
    """DeepFace reports percentages; some versions report fractions. Map both to [0, 1]."""
    if not raw:
        return {}
    vals = {str(k): float(v) for k, v in raw.items()}
    scale = 100.0 if max(vals.values()) > 1.0 else 1.0
    return {k: float(np.clip(v / scale, 0.0, 1.0)) for k, v in vals.items()}


class FaceDetectionService:
    """
    Long-lived face / landmark / expression provider.

    InsightFace FaceAnalysis supplies boxes and 68-point landmarks; DeepFace
    emotion analysis on each face crop supplies the expression vector.
    `initialize()` is idempotent and shared across runs.
    """

    def __init__(
        self,
        model_name: str = "buffalo_l",
        det_size: Tuple[int, int] = (640, 640),
        crop_margin: float = 0.1,
    ) -> None:
        self.model_name = model_name
        self.det_size = det_size
        self.crop_margin = crop_margin
        self._app = None
        self._deepface = None
        self._lock = threading.Lock()
        self.method = "Detection Failed - Models Not Loaded"

    @property
    def is_ready(self) -> bool:
        return self._app is not None and self._deepface is not None

    def initialize(self) -> None:
        with self._lock:
            if self.is_ready:
                logger.debug("Face detection service already initialized.")
                return
            try:
                from insightface.app import FaceAnalysis
                from deepface import DeepFace

                app = FaceAnalysis(
                    name=self.model_name,
                    allowed_modules=["detection", "landmark_3d_68"],
                    providers=["CPUExecutionProvider"],
                )
                app.prepare(ctx_id=0, det_size=self.det_size)
                # Warm up the emotion model so load failures surface here, not per sample.
                self._analyze(DeepFace, np.zeros((48, 48, 3), dtype=np.uint8))
            except Exception as e:
                self._app = None
                self._deepface = None
                self.method = f"Detection Failed - {e}"
                logger.error(f"Failed to load face models: {e}")
                raise DetectionUnavailable(f"Failed to load face detection models: {e}") from e
            self._app = app
            self._deepface = DeepFace
            self.method = f"InsightFace {self.model_name} (68 landmarks) + DeepFace emotion + geometric analysis"
            logger.info(f"Loaded face detection service: {self.method}")

    @staticmethod
    def _analyze(deepface, crop_bgr: np.ndarray) -> Dict[str, float]:
        try:
            out = deepface.analyze(
                img_path=crop_bgr,
                actions=["emotion"],
                detector_backend="skip",
                enforce_detection=False,
                silent=True,
            )
        except TypeError:
            out = deepface.analyze(img_path=crop_bgr, actions=["emotion"], enforce_detection=False)
        res = out[0] if isinstance(out, list) else out
        emo = res.get("emotion") or res.get("emotions") or {}
        return normalize_expressions(emo)

    def detect(self, img_bgr: np.ndarray) -> List[DetectedFace]:
        if not self.is_ready:
            raise DetectionUnavailable("Face detection service is not initialized")
        faces = self._app.get(img_bgr)
        results: List[DetectedFace] = []
        for f in faces:
            # bbox as [x1, y1, x2, y2]
            b = f.bbox.astype(int)
            x1, y1, x2, y2 = int(b[0]), int(b[1]), int(b[2]), int(b[3])
            bbox_xywh = (x1, y1, max(0, x2 - x1), max(0, y2 - y1))
            lm = getattr(f, "landmark_3d_68", None)
            landmarks = np.asarray(lm, dtype=np.float32)[:, :2] if lm is not None else None
            crop = crop_with_margin(img_bgr, bbox_xywh, margin=self.crop_margin)
            expressions: Dict[str, float] = {}
            if crop.size:
                try:
                    expressions = self._analyze(self._deepface, crop)
                except Exception as e:
                    logger.debug(f"Emotion analysis failed for face at {bbox_xywh}: {e}")
            results.append(
                DetectedFace(
                    bbox_xywh=bbox_xywh,
                    det_score=float(getattr(f, "det_score", 1.0)),
                    landmarks=landmarks,
                    expressions=expressions,
                )
            )
        return results
