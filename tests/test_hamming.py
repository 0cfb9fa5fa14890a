import numpy as np
import pytest

from orbfeat.hamming import (
    HISTO_LENGTH,
    RotationHistogram,
    check_dist_epipolar_line,
    compute_three_maxima,
    descriptor_distance,
    radius_by_viewing_cos,
    rotation_bin,
)
from orbfeat.keypoint import KeyPoint


def _random_descriptor(seed):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=32, dtype=np.uint8)


def test_distance_identical_is_zero():
    d = _random_descriptor(1)
    assert descriptor_distance(d, d.copy()) == 0


def test_distance_complement_is_full():
    d = _random_descriptor(2)
    assert descriptor_distance(d, np.bitwise_not(d)) == 256


def test_distance_symmetric_and_bytes_match_arrays():
    a = _random_descriptor(3)
    b = _random_descriptor(4)
    assert descriptor_distance(a, b) == descriptor_distance(b, a)
    assert descriptor_distance(a.tobytes(), b.tobytes()) == descriptor_distance(a, b)


def test_distance_counts_single_bit():
    a = bytes(32)
    b = bytearray(32)
    b[17] = 0x10
    assert descriptor_distance(a, bytes(b)) == 1


def test_distance_triangle_inequality():
    a, b, c = (_random_descriptor(s) for s in (5, 6, 7))
    assert descriptor_distance(a, c) <= descriptor_distance(a, b) + descriptor_distance(b, c)


def test_distance_length_mismatch():
    with pytest.raises(ValueError):
        descriptor_distance(bytes(32), bytes(31))


def test_three_maxima_order():
    counts = [0, 5, 3, 4, 0]
    assert compute_three_maxima(counts) == (1, 3, 2)


def test_three_maxima_accepts_bins():
    bins = [[1], [2, 3, 4], [], [5, 6]]
    assert compute_three_maxima(bins) == (1, 3, 0)


def test_three_maxima_drops_weak_second():
    assert compute_three_maxima([100, 5, 0]) == (0, None, None)


def test_three_maxima_drops_weak_third():
    assert compute_three_maxima([100, 50, 5]) == (0, 1, None)


def test_three_maxima_empty():
    assert compute_three_maxima([0] * HISTO_LENGTH) == (None, None, None)


def test_rotation_bin_equal_angles():
    assert rotation_bin(45.0, 45.0) == 0


def test_rotation_bin_wraps_negative():
    assert rotation_bin(0.0, 30.0) == rotation_bin(330.0, 0.0)


def test_rotation_bin_in_range():
    for a1 in range(0, 360, 17):
        for a2 in range(0, 360, 23):
            assert 0 <= rotation_bin(float(a1), float(a2)) < HISTO_LENGTH


def test_rotation_bin_out_of_range():
    with pytest.raises(ValueError):
        rotation_bin(1000.0, 0.0)


def test_radius_by_viewing_cos():
    assert radius_by_viewing_cos(0.999) == 2.5
    assert radius_by_viewing_cos(0.998) == 4.0
    assert radius_by_viewing_cos(0.5) == 4.0


_HORIZONTAL_F = np.array([[0, 0, 0], [0, 0, -1], [0, 1, 0]], dtype=np.float32)


def test_epipolar_point_on_line():
    kp1 = KeyPoint(x=10.0, y=20.0)
    kp2 = KeyPoint(x=50.0, y=20.0)
    assert check_dist_epipolar_line(kp1, kp2, _HORIZONTAL_F, [1.0]) is True


def test_epipolar_point_far_from_line():
    kp1 = KeyPoint(x=10.0, y=20.0)
    kp2 = KeyPoint(x=50.0, y=30.0)
    assert check_dist_epipolar_line(kp1, kp2, _HORIZONTAL_F, [1.0]) is False


def test_epipolar_uses_octave_sigma():
    kp1 = KeyPoint(x=10.0, y=20.0)
    near = KeyPoint(x=50.0, y=23.0, octave=1)
    coarse = KeyPoint(x=50.0, y=23.0, octave=0)
    sigma2 = [1.0, 4.0]
    assert check_dist_epipolar_line(kp1, near, _HORIZONTAL_F, sigma2) is True
    assert check_dist_epipolar_line(kp1, coarse, _HORIZONTAL_F, sigma2) is False


def test_epipolar_degenerate_matrix():
    kp = KeyPoint(x=1.0, y=1.0)
    assert check_dist_epipolar_line(kp, kp, np.zeros((3, 3)), [1.0]) is False


def test_epipolar_bad_shape():
    kp = KeyPoint(x=1.0, y=1.0)
    with pytest.raises(ValueError):
        check_dist_epipolar_line(kp, kp, np.zeros((2, 3)), [1.0])


def test_histogram_rejects_lone_rotation():
    hist = RotationHistogram()
    for index in range(20):
        hist.add(10.0, 10.0, index)
    hist.add(70.0, 10.0, 99)
    assert hist.outliers() == [99]


def test_histogram_keeps_three_dominant_bins():
    hist = RotationHistogram()
    index = 0
    for rot in (0.0, 30.0, 60.0, 90.0):
        for _ in range(10):
            hist.add(rot, 0.0, index)
            index += 1
    assert hist.outliers() == list(range(30, 40))


def test_histogram_add_returns_bin():
    hist = RotationHistogram()
    b = hist.add(5.0, 5.0, 7)
    assert hist.bins[b] == [7]
    assert hist.outliers() == []