from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from smileframes.config import GeometryThresholds


# 68-point (iBUG) landmark indices
RIGHT_BROW_INNER, LEFT_BROW_INNER = 21, 22
NOSE_TIP = 30
RIGHT_EYE_OUTER, LEFT_EYE_OUTER = 36, 45
MOUTH_RIGHT, MOUTH_LEFT = 48, 54
UPPER_LIP_OUTER, LOWER_LIP_OUTER = 51, 57
UPPER_LIP_INNER, LOWER_LIP_INNER = 62, 66
NUM_LANDMARKS = 68


@dataclass(frozen=True)
class GeometricFeatures:
    mouth_width_ratio: float = 0.0
    mouth_curvature: float = 0.0
    eye_crinkle: float = 0.0
    mouth_openness_ratio: float = 0.0
    symmetry: float = 0.0


@dataclass(frozen=True)
class GeometryResult:
    confidence: float
    features: GeometricFeatures
    valid: bool = True


_INVALID = GeometryResult(confidence=0.0, features=GeometricFeatures(), valid=False)


def _dist(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a - b))


def _band_credit(value: float, bands: Sequence[Tuple[float, float]]) -> float:
    """Partial credit of the first (highest) band whose threshold `value` reaches."""
    for threshold, credit in sorted(bands, key=lambda b: b[0], reverse=True):
        if value >= threshold:
            return float(credit)
    return 0.0


def _as_points(landmarks) -> Optional[np.ndarray]:
    if landmarks is None:
        return None
    try:
        pts = np.asarray(landmarks, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if pts.ndim != 2 or pts.shape[0] < NUM_LANDMARKS or pts.shape[1] < 2:
        return None
    pts = pts[:NUM_LANDMARKS, :2]
    if not np.all(np.isfinite(pts)):
        return None
    return pts


def extract_features(pts: np.ndarray, thresholds: GeometryThresholds) -> Optional[GeometricFeatures]:
    """Scale-invariant smile ratios, or None when a reference distance is degenerate."""
    eps = thresholds.min_reference_distance
    eye_distance = _dist(pts[RIGHT_EYE_OUTER], pts[LEFT_EYE_OUTER])
    mouth_width = _dist(pts[MOUTH_RIGHT], pts[MOUTH_LEFT])
    if eye_distance <= eps or mouth_width <= eps:
        return None

    mouth_width_ratio = mouth_width / eye_distance

    # Image y grows downward: lifted corners sit above the lip-centre midpoint.
    corner_mid_y = (pts[MOUTH_RIGHT][1] + pts[MOUTH_LEFT][1]) / 2.0
    lip_mid_y = (pts[UPPER_LIP_OUTER][1] + pts[LOWER_LIP_OUTER][1]) / 2.0
    lift = (lip_mid_y - corner_mid_y) / mouth_width
    mouth_curvature = float(np.clip(lift / max(thresholds.curvature_full_lift, eps), 0.0, 1.0))

    span = max(thresholds.crinkle_relaxed_ratio - thresholds.crinkle_tight_ratio, eps)
    crinkles = []
    for eye_idx, brow_idx in ((RIGHT_EYE_OUTER, RIGHT_BROW_INNER), (LEFT_EYE_OUTER, LEFT_BROW_INNER)):
        ratio = _dist(pts[eye_idx], pts[brow_idx]) / eye_distance
        crinkles.append(float(np.clip((thresholds.crinkle_relaxed_ratio - ratio) / span, 0.0, 1.0)))
    eye_crinkle = float(np.mean(crinkles))

    gap = abs(float(pts[LOWER_LIP_INNER][1] - pts[UPPER_LIP_INNER][1]))
    mouth_openness_ratio = gap / mouth_width

    d_right = _dist(pts[MOUTH_RIGHT], pts[NOSE_TIP])
    d_left = _dist(pts[MOUTH_LEFT], pts[NOSE_TIP])
    hi = max(d_right, d_left)
    symmetry = min(d_right, d_left) / hi if hi > eps else 0.0

    return GeometricFeatures(
        mouth_width_ratio=float(mouth_width_ratio),
        mouth_curvature=mouth_curvature,
        eye_crinkle=eye_crinkle,
        mouth_openness_ratio=float(mouth_openness_ratio),
        symmetry=float(symmetry),
    )


def score_geometry(landmarks, thresholds: Optional[GeometryThresholds] = None) -> GeometryResult:
    """
    Smile-geometry confidence in [0, 1] from a 68-point landmark set.

    Each feature pays banded partial credit: mouth width up to 0.30, curvature
    up to 0.25, eye crinkle up to 0.25, symmetry up to 0.20. Openness is
    reported but only used by the combiner. Unusable landmarks give 0.
    """
    thresholds = thresholds or GeometryThresholds()
    pts = _as_points(landmarks)
    if pts is None:
        return _INVALID
    feats = extract_features(pts, thresholds)
    if feats is None:
        return _INVALID

    score = (
        _band_credit(feats.mouth_width_ratio, thresholds.width_bands)
        + _band_credit(feats.mouth_curvature, thresholds.curvature_bands)
        + _band_credit(feats.eye_crinkle, thresholds.crinkle_bands)
        + _band_credit(feats.symmetry, thresholds.symmetry_bands)
    )
    return GeometryResult(confidence=float(np.clip(score, 0.0, 1.0)), features=feats, valid=True)
