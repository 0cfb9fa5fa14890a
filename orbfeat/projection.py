"""Matching of map landmarks by projecting them into a view."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np

from .bow_matching import MatchView
from .hamming import TH_HIGH, descriptor_distance, radius_by_viewing_cos

_NO_MATCH_DISTANCE = 256
_MIN_VIEW_COS = 0.5


def _vector3(value, name: str) -> np.ndarray:
    array = np.asarray(value, dtype=np.float64).reshape(-1)
    if array.shape != (3,):
        raise ValueError(f"{name} must hold three coordinates")
    return array


def _matrix3(value, name: str) -> np.ndarray:
    array = np.asarray(value, dtype=np.float64)
    if array.shape != (3, 3):
        raise ValueError(f"{name} must be a 3x3 matrix")
    return array


@dataclass
class Camera:
    """Pinhole intrinsics, image bounds and pyramid scales of one view.

    ``bf`` is the stereo baseline times the focal length, used to predict
    the right-image coordinate of a projected point.
    """

    fx: float
    fy: float
    cx: float
    cy: float
    min_x: float
    max_x: float
    min_y: float
    max_y: float
    bf: float = 0.0
    scale_factors: Sequence[float] = field(default_factory=lambda: (1.0,))

    def __post_init__(self) -> None:
        self.scale_factors = tuple(float(s) for s in self.scale_factors)
        if not self.scale_factors:
            raise ValueError("at least one scale factor is needed")

    def project(self, point) -> tuple[float, float] | None:
        """Pixel coordinates of a point in camera coordinates.

        Returns ``None`` for a point that is not in front of the camera.
        """
        x, y, z = _vector3(point, "point")
        if z <= 0.0:
            return None
        inv_z = 1.0 / z
        return self.fx * x * inv_z + self.cx, self.fy * y * inv_z + self.cy

    def contains(self, u: float, v: float) -> bool:
        """Whether pixel ``(u, v)`` lies inside the image bounds."""
        return self.min_x <= u < self.max_x and self.min_y <= v < self.max_y

    def predict_right(self, u: float, depth: float) -> float:
        """Right-image coordinate of a point seen at column ``u`` and ``depth``."""
        return u - self.bf / depth


@dataclass(eq=False)
class MapLandmark:
    """A 3-D point with a descriptor and the range it can be recognised in.

    ``normal`` is the mean viewing direction; ``min_distance`` and
    ``max_distance`` bound the distances at which the point is expected to
    be detected. A landmark with ``bad`` set is never matched.
    """

    position: Any
    descriptor: Any
    normal: Any
    min_distance: float
    max_distance: float
    bad: bool = False

    def __post_init__(self) -> None:
        self.position = _vector3(self.position, "position")
        normal = _vector3(self.normal, "normal")
        length = float(np.linalg.norm(normal))
        if length == 0.0:
            raise ValueError("normal must not be the zero vector")
        self.normal = normal / length
        if self.min_distance < 0 or self.max_distance <= 0:
            raise ValueError("distances must be positive")
        if self.min_distance > self.max_distance:
            raise ValueError("min_distance must not exceed max_distance")


def _usable(landmark: Any) -> bool:
    return landmark is not None and not getattr(landmark, "bad", False)


def _predict_level(landmark: MapLandmark, distance: float,
                   scale_factors: Sequence[float]) -> int:
    levels = len(scale_factors)
    if levels == 1:
        return 0
    ratio = landmark.max_distance / distance
    level = math.ceil(math.log(ratio) / math.log(scale_factors[1]))
    return min(max(level, 0), levels - 1)


def search_by_projection(view: MatchView, landmarks: Sequence[Any], camera: Camera,
                         rotation, translation, th: float = 1.0,
                         nn_ratio: float = 0.6) -> dict[int, Any]:
    """Match landmarks to features of ``view`` around their projections.

    ``rotation`` and ``translation`` map world coordinates into the camera.
    Features that already hold a landmark, or that were matched earlier in
    this search, are not reused. Returns a mapping from feature index to the
    landmark matched to it.
    """
    r_cw = _matrix3(rotation, "rotation")
    t_cw = _vector3(translation, "translation")
    origin = -r_cw.T @ t_cw
    ratio = np.float32(nn_ratio)
    matches: dict[int, Any] = {}

    for landmark in landmarks:
        if not _usable(landmark):
            continue
        p_cam = r_cw @ landmark.position + t_cw
        pixel = camera.project(p_cam)
        if pixel is None:
            continue
        u, v = pixel
        if not camera.contains(u, v):
            continue
        offset = landmark.position - origin
        dist = float(np.linalg.norm(offset))
        if dist == 0.0 or dist < landmark.min_distance or dist > landmark.max_distance:
            continue
        view_cos = float(offset @ landmark.normal) / dist
        if view_cos < _MIN_VIEW_COS:
            continue
        level = _predict_level(landmark, dist, camera.scale_factors)

        radius = radius_by_viewing_cos(view_cos)
        if th != 1.0:
            radius *= th
        window = radius * camera.scale_factors[level]
        candidates = view.features_in_area(u, v, window, level - 1, level)
        if not candidates:
            continue

        right_u = camera.predict_right(u, float(p_cam[2]))
        best = best2 = _NO_MATCH_DISTANCE
        best_level = best_level2 = None
        best_idx = None
        for idx in candidates:
            if idx in matches or view.landmarks[idx] is not None:
                continue
            if view.right[idx] > 0 and abs(right_u - view.right[idx]) > window:
                continue
            dist_d = descriptor_distance(landmark.descriptor, view.descriptors[idx])
            octave = view.keypoints[idx].octave
            if dist_d < best:
                best2, best = best, dist_d
                best_level2, best_level = best_level, octave
                best_idx = idx
            elif dist_d < best2:
                best_level2 = octave
                best2 = dist_d

        if best_idx is None or best > TH_HIGH:
            continue
        if best_level == best_level2 and np.float32(best) > ratio * np.float32(best2):
            continue
        matches[best_idx] = landmark
    return matches


def _nearest(view: MatchView, landmark: MapLandmark, p_cam: np.ndarray,
             camera: Camera, th: float) -> int | None:
    pixel = camera.project(p_cam)
    if pixel is None:
        return None
    u, v = pixel
    if not camera.contains(u, v):
        return None
    dist = float(np.linalg.norm(p_cam))
    if dist < landmark.min_distance or dist > landmark.max_distance:
        return None
    level = _predict_level(landmark, dist, camera.scale_factors)
    radius = th * camera.scale_factors[level]

    best = math.inf
    best_idx = None
    for idx in view.features_in_area(u, v, radius):
        octave = view.keypoints[idx].octave
        if octave < level - 1 or octave > level:
            continue
        dist_d = descriptor_distance(landmark.descriptor, view.descriptors[idx])
        if dist_d < best:
            best = dist_d
            best_idx = idx
    if best_idx is None or best > TH_HIGH:
        return None
    return best_idx


def search_by_sim3(view1: MatchView, view2: MatchView,
                   landmarks1: Sequence[Any], landmarks2: Sequence[Any],
                   camera: Camera, scale: float, rotation, translation,
                   th: float = 7.5) -> tuple[list[Any], int]:
    """Find mutual matches between two views related by a similarity.

    ``landmarks1`` and ``landmarks2`` hold, per feature of each view, its
    landmark or ``None``, with positions given in that view's own camera
    frame. ``scale``, ``rotation`` and ``translation`` map points of the
    second camera into the first. ``view1.landmarks`` holds the matches
    already known (landmarks of the second view); those features are not
    searched again. Returns the updated per-feature matches of ``view1`` and
    the number of new matches found.
    """
    if len(landmarks1) != len(view1) or len(landmarks2) != len(view2):
        raise ValueError("there must be one landmark slot per feature")
    if scale <= 0:
        raise ValueError("scale must be positive")
    r12 = _matrix3(rotation, "rotation")
    t12 = _vector3(translation, "translation")
    s_r12 = scale * r12
    s_r21 = (1.0 / scale) * r12.T
    t21 = -s_r21 @ t12

    matches = list(view1.landmarks)
    already1 = [m is not None for m in matches]
    already2 = [False] * len(view2)
    for known in matches:
        if known is None:
            continue
        for idx2, candidate in enumerate(landmarks2):
            if candidate is known:
                already2[idx2] = True
                break

    match1: list[int | None] = [None] * len(view1)
    for i1, landmark in enumerate(landmarks1):
        if already1[i1] or not _usable(landmark):
            continue
        p2 = s_r21 @ landmark.position + t21
        match1[i1] = _nearest(view2, landmark, p2, camera, th)

    match2: list[int | None] = [None] * len(view2)
    for i2, landmark in enumerate(landmarks2):
        if already2[i2] or not _usable(landmark):
            continue
        p1 = s_r12 @ landmark.position + t12
        match2[i2] = _nearest(view1, landmark, p1, camera, th)

    found = 0
    for i1, idx2 in enumerate(match1):
        if idx2 is not None and match2[idx2] == i1:
            matches[i1] = landmarks2[idx2]
            found += 1
    return matches, found