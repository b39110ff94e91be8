from __future__ import annotations

import time
from typing import Dict, Iterable, List, Optional

import numpy as np
import pytest

from smileframes.config import ExtractorConfig, SamplingConfig
from smileframes.detectors.face_detector import DetectedFace
from smileframes.pipeline import SmileExtractor


def build_landmarks(
    width: float = 56.0,
    lift: float = 8.0,
    brow: float = 10.0,
    gap: float = 10.0,
    shift: float = 0.0,
) -> np.ndarray:
    """
    Synthetic 68-point face. Outer eye corners 80px apart at y=100, nose tip at
    (100, 140), lip centre midpoint at y=170. `lift` raises the mouth corners,
    `brow` is the inner-brow height above the eyes, `gap` opens the inner lips,
    `shift` slides both mouth corners sideways.
    """
    pts = np.tile(np.array([100.0, 120.0]), (68, 1))
    pts[36] = (60.0, 100.0)
    pts[45] = (140.0, 100.0)
    pts[21] = (82.0, 100.0 - brow)
    pts[22] = (118.0, 100.0 - brow)
    pts[30] = (100.0, 140.0)
    pts[48] = (100.0 - width / 2.0 + shift, 170.0 - lift)
    pts[54] = (100.0 + width / 2.0 + shift, 170.0 - lift)
    pts[51] = (100.0, 164.0)
    pts[57] = (100.0, 176.0)
    pts[62] = (100.0, 170.0 - gap / 2.0)
    pts[66] = (100.0, 170.0 + gap / 2.0)
    return pts


def build_face(happy: float, landmarks: Optional[np.ndarray] = None, neutral: bool = False) -> DetectedFace:
    if landmarks is None:
        landmarks = build_landmarks(width=40.0, lift=0.0, brow=20.0, gap=0.0) if neutral else build_landmarks()
    return DetectedFace(
        bbox_xywh=(10, 10, 40, 40),
        det_score=0.9,
        landmarks=landmarks,
        expressions={"happy": happy, "neutral": 1.0 - happy},
    )


class FakeVideo:
    def __init__(
        self,
        duration: float = 10.0,
        width: int = 64,
        height: int = 48,
        fail_at: Iterable[float] = (),
        slow_at: Iterable[float] = (),
        slow_seconds: float = 0.3,
    ) -> None:
        self.duration = duration
        self.width = width
        self.height = height
        self.fail_at = list(fail_at)
        self.slow_at = list(slow_at)
        self.slow_seconds = slow_seconds
        self.last_time: Optional[float] = None
        self.reads: List[float] = []
        self.released = False

    def read_at(self, timestamp: float):
        self.reads.append(timestamp)
        self.last_time = timestamp
        if any(abs(timestamp - s) < 1e-6 for s in self.slow_at):
            time.sleep(self.slow_seconds)
        if any(abs(timestamp - f) < 1e-6 for f in self.fail_at):
            return None
        return np.full((self.height, self.width, 3), 128, dtype=np.uint8)

    def release(self) -> None:
        self.released = True


class ScriptedDetector:
    """Returns the faces scripted for the instant the fake video last decoded."""

    def __init__(self, video: FakeVideo, script: Optional[Dict[float, List[DetectedFace]]] = None) -> None:
        self.video = video
        self.script = script or {}
        self.init_calls = 0
        self.raster_shapes: List[tuple] = []
        self.errors: Dict[float, Exception] = {}
        self.hooks: Dict[float, object] = {}

    def initialize(self) -> None:
        self.init_calls += 1

    def detect(self, img_bgr: np.ndarray) -> List[DetectedFace]:
        self.raster_shapes.append(img_bgr.shape)
        t = self.video.last_time
        for key, hook in self.hooks.items():
            if abs(key - t) < 1e-6:
                hook()
        for key, err in self.errors.items():
            if abs(key - t) < 1e-6:
                raise err
        for key, faces in self.script.items():
            if abs(key - t) < 1e-6:
                return faces
        return []


@pytest.fixture
def make_landmarks():
    return build_landmarks


@pytest.fixture
def make_face():
    return build_face


@pytest.fixture
def fake_video_cls():
    return FakeVideo


@pytest.fixture
def make_extractor():
    """Build (extractor, video, detector) around a scripted detector sampled at 5 fps."""

    def _make(
        video: Optional[FakeVideo] = None,
        script=None,
        config: Optional[ExtractorConfig] = None,
        on_open=None,
        **video_kwargs,
    ):
        video = video or FakeVideo(**video_kwargs)
        detector = ScriptedDetector(video, script)
        config = config or ExtractorConfig(sampling=SamplingConfig(sample_fps=5.0))

        def _open(source, video_config):
            if on_open is not None:
                on_open()
            return video

        extractor = SmileExtractor(detector, config, open_source=_open)
        return extractor, video, detector

    return _make
