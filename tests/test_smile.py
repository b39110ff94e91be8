import numpy as np
import pytest

from smileframes.config import SmileThresholds
from smileframes.detectors.face_detector import DetectedFace
from smileframes.quality.geometry import score_geometry
from smileframes.quality.smile import SmileScorer


def test_clear_smile_is_genuine(make_face):
    verdict = SmileScorer().score(make_face(0.3))
    # 0.4 * 0.3 + 0.6 * 1.0 + crinkle, symmetry and wide-open bonuses
    assert verdict.confidence == pytest.approx(0.84)
    assert verdict.is_genuine
    assert verdict.geometry.valid


def test_higher_happiness_ranks_higher(make_face):
    scorer = SmileScorer()
    confs = [scorer.score(make_face(h)).confidence for h in (0.3, 0.4, 0.5, 0.6)]
    assert confs == sorted(confs)
    assert len(set(confs)) == 4


def test_confidence_is_capped_at_one(make_face):
    verdict = SmileScorer().score(make_face(1.0))
    assert verdict.confidence == 1.0


def test_happy_without_geometry_is_rejected(make_face):
    verdict = SmileScorer().score(make_face(1.0, neutral=True))
    assert not verdict.is_genuine
    assert verdict.confidence < 0.65


def test_geometry_without_happiness_is_rejected(make_face):
    # passes a relaxed pre-filter and the confidence floor, fails the happy floor
    verdict = SmileScorer(SmileThresholds(prefilter_happy=0.1)).score(make_face(0.15))
    assert verdict.geometry is not None
    assert verdict.confidence >= 0.65
    assert not verdict.is_genuine


def test_prefilter_covers_everything_below_happy_floor(make_face):
    t = SmileThresholds()
    assert t.prefilter_happy >= t.min_happy
    verdict = SmileScorer().score(make_face(0.15))
    assert verdict.geometry is None
    assert not verdict.is_genuine


def test_prefilter_skips_geometry_for_neutral_faces(make_face):
    verdict = SmileScorer().score(make_face(0.05))
    assert verdict.geometry is None
    assert not verdict.is_genuine


def test_face_without_landmarks_is_skipped():
    face = DetectedFace(bbox_xywh=(0, 0, 10, 10), det_score=0.9, landmarks=None, expressions={"happy": 0.99})
    assert SmileScorer().score(face) is None


def test_degenerate_geometry_never_qualifies(make_face):
    verdict = SmileScorer().score(make_face(0.99, landmarks=np.zeros((68, 2))))
    assert verdict.confidence == 0.0
    assert not verdict.is_genuine


def test_missing_happy_key_counts_as_zero(make_landmarks):
    face = DetectedFace(bbox_xywh=(0, 0, 10, 10), det_score=0.9, landmarks=make_landmarks(), expressions={})
    verdict = SmileScorer().score(face)
    assert verdict.happy == 0.0
    assert not verdict.is_genuine


@pytest.mark.parametrize("happy", [-0.5, 0.0, 0.25, 0.5, 0.75, 1.0, 3.0])
@pytest.mark.parametrize("geom", [dict(), dict(width=40, lift=0, brow=20, gap=0), dict(width=50, lift=5), dict(shift=12)])
def test_confidence_stays_in_unit_interval(make_landmarks, happy, geom):
    scorer = SmileScorer(SmileThresholds(crinkle_bonus=0.5, symmetry_bonus=0.5, wide_open_bonus=0.5))
    verdict = scorer.combine(happy, score_geometry(make_landmarks(**geom)))
    assert 0.0 <= verdict.confidence <= 1.0


def test_evaluate_frame_picks_best_genuine_face(make_face):
    faces = [make_face(0.3), make_face(0.6), make_face(0.9, neutral=True), make_face(0.05)]
    verdict = SmileScorer().evaluate_frame(faces)
    assert verdict.faces == 4
    assert verdict.genuine_faces == 2
    assert verdict.best.happy == pytest.approx(0.6)
    assert verdict.has_genuine_smile


def test_evaluate_frame_without_faces():
    verdict = SmileScorer().evaluate_frame([])
    assert verdict.faces == 0
    assert verdict.best is None
    assert not verdict.has_genuine_smile
