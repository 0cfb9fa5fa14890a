import numpy as np
import pytest

from orbfeat.bow_matching import MatchView
from orbfeat.keypoint import KeyPoint
from orbfeat.projection import Camera, MapLandmark, search_by_projection, search_by_sim3

IDENTITY = np.eye(3)
ZERO = np.zeros(3)


def _desc(bits):
    flags = np.zeros(256, dtype=bool)
    flags[:bits] = True
    return np.packbits(flags)


def _camera(scale_factors=(1.0,)):
    return Camera(fx=100.0, fy=100.0, cx=50.0, cy=50.0, min_x=0.0, max_x=100.0,
                  min_y=0.0, max_y=100.0, bf=0.0, scale_factors=scale_factors)


def _landmark(bits=0, position=(0.0, 0.0, 2.0), bad=False):
    return MapLandmark(position=position, descriptor=_desc(bits), normal=(0, 0, 1),
                       min_distance=1.0, max_distance=4.0, bad=bad)


def _view(points, landmarks=None):
    keypoints = [KeyPoint(x=x, y=y, octave=octave) for x, y, octave, _ in points]
    descriptors = np.vstack([_desc(bits) for *_, bits in points])
    return MatchView(keypoints=keypoints, descriptors=descriptors, landmarks=landmarks)


def test_camera_project_and_contains():
    camera = _camera()
    assert camera.project((0.0, 0.0, 2.0)) == (50.0, 50.0)
    assert camera.project((0.0, 0.0, -1.0)) is None
    assert camera.contains(0.0, 0.0)
    assert not camera.contains(100.0, 50.0)


def test_landmark_rejects_zero_normal():
    with pytest.raises(ValueError):
        MapLandmark(position=(0, 0, 1), descriptor=_desc(0), normal=(0, 0, 0),
                    min_distance=1.0, max_distance=2.0)


def test_projection_matches_nearby_feature():
    landmark = _landmark()
    view = _view([(50.5, 50.0, 0, 0), (90.0, 90.0, 0, 0)])
    result = search_by_projection(view, [landmark], _camera(), IDENTITY, ZERO)
    assert result == {0: landmark}


def test_projection_rejects_distant_descriptor():
    view = _view([(50.0, 50.0, 0, 200)])
    result = search_by_projection(view, [_landmark()], _camera(), IDENTITY, ZERO)
    assert result == {}


def test_projection_skips_points_behind_camera():
    view = _view([(50.0, 50.0, 0, 0)])
    landmark = _landmark(position=(0.0, 0.0, -2.0))
    assert search_by_projection(view, [landmark], _camera(), IDENTITY, ZERO) == {}


def test_projection_ratio_rejects_ambiguous_match():
    view = _view([(50.0, 50.0, 0, 10), (51.0, 50.0, 0, 12)])
    result = search_by_projection(view, [_landmark()], _camera(), IDENTITY, ZERO,
                                  nn_ratio=0.6)
    assert result == {}


def test_projection_skips_occupied_feature():
    occupant = _landmark()
    view = _view([(50.0, 50.0, 0, 0)], landmarks=[occupant])
    assert search_by_projection(view, [_landmark()], _camera(), IDENTITY, ZERO) == {}


def test_projection_ignores_bad_landmark():
    view = _view([(50.0, 50.0, 0, 0)])
    assert search_by_projection(view, [_landmark(bad=True)], _camera(),
                                IDENTITY, ZERO) == {}


def test_projection_uses_predicted_level():
    landmark = _landmark()
    camera = _camera(scale_factors=(1.0, 2.0, 4.0))
    view = _view([(50.0, 50.0, 2, 0), (50.0, 51.0, 1, 0)])
    result = search_by_projection(view, [landmark], camera, IDENTITY, ZERO)
    assert result == {1: landmark}


def test_sim3_identity_finds_mutual_match():
    first = _landmark()
    second = _landmark()
    view1 = _view([(50.0, 50.0, 0, 0)])
    view2 = _view([(50.0, 50.0, 0, 0)])
    matches, found = search_by_sim3(view1, view2, [first], [second], _camera(),
                                    1.0, IDENTITY, ZERO)
    assert found == 1
    assert matches[0] is second


def test_sim3_keeps_known_matches():
    first = _landmark()
    second = _landmark()
    view1 = _view([(50.0, 50.0, 0, 0)], landmarks=[second])
    view2 = _view([(50.0, 50.0, 0, 0)])
    matches, found = search_by_sim3(view1, view2, [first], [second], _camera(),
                                    1.0, IDENTITY, ZERO)
    assert found == 0
    assert matches[0] is second


def test_sim3_requires_slot_per_feature():
    view1 = _view([(50.0, 50.0, 0, 0)])
    view2 = _view([(50.0, 50.0, 0, 0)])
    with pytest.raises(ValueError):
        search_by_sim3(view1, view2, [], [None], _camera(), 1.0, IDENTITY, ZERO)