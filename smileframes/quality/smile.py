from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from smileframes.config import GeometryThresholds, SmileThresholds
from smileframes.detectors.face_detector import DetectedFace
from smileframes.quality.geometry import GeometryResult, score_geometry


@dataclass(frozen=True)
class SmileVerdict:
    confidence: float
    is_genuine: bool
    happy: float
    geometry: Optional[GeometryResult] = None


@dataclass(frozen=True)
class FrameVerdict:
    faces: int = 0
    genuine_faces: int = 0
    best: Optional[SmileVerdict] = None

    @property
    def has_genuine_smile(self) -> bool:
        return self.best is not None and self.best.is_genuine


class SmileScorer:
    """Blends the learned happy probability with landmark geometry."""

    def __init__(
        self,
        thresholds: Optional[SmileThresholds] = None,
        geometry: Optional[GeometryThresholds] = None,
    ) -> None:
        self.thresholds = thresholds or SmileThresholds()
        self.geometry = geometry or GeometryThresholds()

    def combine(self, happy: float, geo: GeometryResult) -> SmileVerdict:
        t = self.thresholds
        happy = float(np.clip(happy, 0.0, 1.0))
        if not geo.valid:
            return SmileVerdict(confidence=0.0, is_genuine=False, happy=happy, geometry=geo)

        feats = geo.features
        combined = t.learned_weight * happy + t.geometry_weight * geo.confidence
        if feats.eye_crinkle >= t.crinkle_bonus_at:
            combined += t.crinkle_bonus
        if feats.symmetry >= t.symmetry_bonus_at:
            combined += t.symmetry_bonus
        if feats.mouth_width_ratio >= t.wide_open_width_at and feats.mouth_openness_ratio >= t.wide_open_openness_at:
            combined += t.wide_open_bonus
        confidence = float(np.clip(combined, 0.0, 1.0))

        # No single signal can pass on its own.
        genuine = (
            confidence >= t.min_confidence
            and geo.confidence >= t.min_geometry
            and happy >= t.min_happy
        )
        return SmileVerdict(confidence=confidence, is_genuine=genuine, happy=happy, geometry=geo)

    def score(self, face: DetectedFace) -> Optional[SmileVerdict]:
        """None when the face has no landmarks and cannot be considered at all."""
        if face.landmarks is None:
            return None
        happy = face.happy
        if happy < self.thresholds.prefilter_happy:
            return SmileVerdict(confidence=float(self.thresholds.learned_weight * happy), is_genuine=False, happy=happy)
        return self.combine(happy, score_geometry(face.landmarks, self.geometry))

    def evaluate_frame(self, faces: Iterable[DetectedFace]) -> FrameVerdict:
        n_faces = 0
        genuine = []
        for face in faces:
            n_faces += 1
            verdict = self.score(face)
            if verdict is not None and verdict.is_genuine:
                genuine.append(verdict)
        best = max(genuine, key=lambda v: v.confidence) if genuine else None
        return FrameVerdict(faces=n_faces, genuine_faces=len(genuine), best=best)
