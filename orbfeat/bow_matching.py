"""Descriptor matching between views restricted by vocabulary nodes or windows."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Sequence

import numpy as np

from .hamming import TH_LOW, RotationHistogram, check_dist_epipolar_line, descriptor_distance
from .keypoint import KeyPoint

_NO_MATCH_DISTANCE = 256
_EPIPOLE_RADIUS2 = 100.0


@dataclass
class MatchView:
    """What the matchers need to know about one frame or keyframe.

    ``feature_vector`` maps a vocabulary node id to the indices of the
    features filed under it. ``landmarks`` holds, per feature, the map point
    already associated with it or ``None``; a landmark with a true ``bad``
    attribute is ignored. ``right`` holds the right-image coordinate of each
    feature, negative for features without a stereo measurement.
    """

    keypoints: Sequence[KeyPoint]
    descriptors: np.ndarray
    feature_vector: Mapping[int, Sequence[int]] = field(default_factory=dict)
    landmarks: list[Any] | None = None
    right: Sequence[float] | None = None

    def __post_init__(self) -> None:
        self.keypoints = list(self.keypoints)
        self.descriptors = np.asarray(self.descriptors, dtype=np.uint8)
        count = len(self.keypoints)
        if self.descriptors.ndim != 2 or len(self.descriptors) != count:
            raise ValueError("there must be one descriptor row per keypoint")
        if self.landmarks is None:
            self.landmarks = [None] * count
        else:
            self.landmarks = list(self.landmarks)
        if len(self.landmarks) != count:
            raise ValueError("there must be one landmark slot per keypoint")
        if self.right is None:
            self.right = [-1.0] * count
        else:
            self.right = list(self.right)
        if len(self.right) != count:
            raise ValueError("there must be one right coordinate per keypoint")
        for indices in self.feature_vector.values():
            for index in indices:
                if not 0 <= index < count:
                    raise ValueError(f"feature index {index} is out of range")

    def __len__(self) -> int:
        return len(self.keypoints)

    def is_stereo(self, index: int) -> bool:
        """Whether feature ``index`` has a right-image measurement."""
        return self.right[index] >= 0

    def features_in_area(self, x: float, y: float, radius: float,
                         min_level: int | None = None,
                         max_level: int | None = None) -> list[int]:
        """Indices of features inside the square window of half-size ``radius``.

        Features whose octave lies below ``min_level`` or above ``max_level``
        are left out; a bound of ``None`` is not applied.
        """
        found = []
        for index, kp in enumerate(self.keypoints):
            if min_level is not None and kp.octave < min_level:
                continue
            if max_level is not None and kp.octave > max_level:
                continue
            if abs(kp.x - x) < radius and abs(kp.y - y) < radius:
                found.append(index)
        return found


def _usable(landmark: Any) -> bool:
    return landmark is not None and not getattr(landmark, "bad", False)


def _shared_nodes(first: MatchView, second: MatchView) -> Iterator[int]:
    yield from sorted(first.feature_vector.keys() & second.feature_vector.keys())


def _passes_ratio(best: float, second_best: float, nn_ratio: float) -> bool:
    if math.isinf(second_best):
        return True
    return bool(np.float32(best) < np.float32(nn_ratio) * np.float32(second_best))


def search_by_bow(first: MatchView, second: MatchView, nn_ratio: float = 0.6,
                  check_orientation: bool = True) -> list[Any]:
    """Match the landmarks of ``first`` to features of ``second``.

    Only features filed under the same vocabulary node are compared. The
    result has one slot per feature of ``second`` holding the matched
    landmark or ``None``.
    """
    matches: list[Any] = [None] * len(second)
    histogram = RotationHistogram()

    for node in _shared_nodes(first, second):
        candidates = second.feature_vector[node]
        for idx1 in first.feature_vector[node]:
            landmark = first.landmarks[idx1]
            if not _usable(landmark):
                continue
            d1 = first.descriptors[idx1]
            best1 = best2 = _NO_MATCH_DISTANCE
            best_idx = None
            for idx2 in candidates:
                if matches[idx2] is not None:
                    continue
                dist = descriptor_distance(d1, second.descriptors[idx2])
                if dist < best1:
                    best2, best1, best_idx = best1, dist, idx2
                elif dist < best2:
                    best2 = dist

            if best_idx is None or best1 > TH_LOW:
                continue
            if not _passes_ratio(best1, best2, nn_ratio):
                continue
            matches[best_idx] = landmark
            if check_orientation:
                histogram.add(first.keypoints[idx1].angle,
                              second.keypoints[best_idx].angle, best_idx)

    if check_orientation:
        for idx2 in histogram.outliers():
            matches[idx2] = None
    return matches


def search_for_initialization(first: MatchView, second: MatchView,
                              prev_matched: Sequence[tuple[float, float]],
                              window_size: float, nn_ratio: float = 0.9,
                              check_orientation: bool = True,
                              ) -> tuple[list[int | None], list[tuple[float, float]]]:
    """Match finest-level features of ``first`` to ``second`` near predicted spots.

    ``prev_matched`` holds, per feature of ``first``, where it is expected
    in ``second``. Returns the index in ``second`` matched to each feature of
    ``first`` (or ``None``) and the predictions updated with the positions of
    the matched features.
    """
    if len(prev_matched) != len(first):
        raise ValueError("there must be one predicted position per feature")

    matches12: list[int | None] = [None] * len(first)
    matches21: list[int | None] = [None] * len(second)
    matched_distance = [math.inf] * len(second)
    histogram = RotationHistogram()

    for i1, kp1 in enumerate(first.keypoints):
        level = kp1.octave
        if level > 0:
            continue
        px, py = prev_matched[i1]
        candidates = second.features_in_area(px, py, window_size, level, level)
        if not candidates:
            continue

        d1 = first.descriptors[i1]
        best = best2 = math.inf
        best_idx = None
        for i2 in candidates:
            dist = descriptor_distance(d1, second.descriptors[i2])
            if matched_distance[i2] <= dist:
                continue
            if dist < best:
                best2, best, best_idx = best, dist, i2
            elif dist < best2:
                best2 = dist

        if best_idx is None or best > TH_LOW:
            continue
        if not _passes_ratio(best, best2, nn_ratio):
            continue
        previous = matches21[best_idx]
        if previous is not None:
            matches12[previous] = None
        matches12[i1] = best_idx
        matches21[best_idx] = i1
        matched_distance[best_idx] = best
        if check_orientation:
            histogram.add(kp1.angle, second.keypoints[best_idx].angle, i1)

    if check_orientation:
        for i1 in histogram.outliers():
            matches12[i1] = None

    updated = [
        (second.keypoints[i2].x, second.keypoints[i2].y) if i2 is not None else tuple(prev)
        for prev, i2 in zip(prev_matched, matches12)
    ]
    return matches12, updated


def search_for_triangulation(first: MatchView, second: MatchView, f12,
                             epipole: tuple[float, float],
                             sigma2: Sequence[float],
                             check_orientation: bool = True,
                             only_stereo: bool = False) -> list[tuple[int, int]]:
    """Pair features of two views that have no landmark yet.

    Candidates share a vocabulary node, are within the low descriptor
    threshold and lie near the epipolar line given by ``f12``. A monocular
    pair is refused when the second feature is close to ``epipole``, the
    projection of the first camera centre into the second image. ``sigma2``
    holds the squared scale of each pyramid level of ``second``. Returns
    ``(index_in_first, index_in_second)`` pairs ordered by the first index.
    """
    ex, ey = epipole
    matches12: list[int | None] = [None] * len(first)
    histogram = RotationHistogram()

    for node in _shared_nodes(first, second):
        candidates = second.feature_vector[node]
        for idx1 in first.feature_vector[node]:
            if first.landmarks[idx1] is not None:
                continue
            stereo1 = first.is_stereo(idx1)
            if only_stereo and not stereo1:
                continue
            kp1 = first.keypoints[idx1]
            d1 = first.descriptors[idx1]
            best_dist = TH_LOW
            best_idx = None

            for idx2 in candidates:
                if second.landmarks[idx2] is not None:
                    continue
                stereo2 = second.is_stereo(idx2)
                if only_stereo and not stereo2:
                    continue
                dist = descriptor_distance(d1, second.descriptors[idx2])
                if dist > TH_LOW or dist > best_dist:
                    continue
                kp2 = second.keypoints[idx2]
                if not stereo1 and not stereo2:
                    dx = ex - kp2.x
                    dy = ey - kp2.y
                    scale = math.sqrt(sigma2[kp2.octave])
                    if dx * dx + dy * dy < _EPIPOLE_RADIUS2 * scale:
                        continue
                if check_dist_epipolar_line(kp1, kp2, f12, sigma2):
                    best_idx = idx2
                    best_dist = dist

            if best_idx is not None:
                matches12[idx1] = best_idx
                if check_orientation:
                    histogram.add(kp1.angle, second.keypoints[best_idx].angle, idx1)

    if check_orientation:
        for idx1 in histogram.outliers():
            matches12[idx1] = None

    return [(i1, i2) for i1, i2 in enumerate(matches12) if i2 is not None]