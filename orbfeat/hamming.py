"""Descriptor distances and geometric checks shared by the matchers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, Sequence, Union

import numpy as np

from .keypoint import KeyPoint

TH_HIGH = 100
TH_LOW = 50
HISTO_LENGTH = 30

_VIEW_COS_LIMIT = 0.998
_NEAR_RADIUS = 2.5
_FAR_RADIUS = 4.0
_EPIPOLAR_CHI2 = 3.84
_MAXIMA_RATIO = np.float32(0.1)

_BIN_FACTOR = np.float32(1.0) / np.float32(HISTO_LENGTH)
_FULL_TURN = np.float32(360.0)

Descriptor = Union[bytes, bytearray, memoryview, np.ndarray, Sequence[int]]


def _as_bytes(descriptor: Descriptor) -> bytes:
    if isinstance(descriptor, (bytes, bytearray, memoryview)):
        return bytes(descriptor)
    array = np.asarray(descriptor)
    if array.dtype != np.uint8:
        if np.any((array < 0) | (array > 255)):
            raise ValueError("descriptor values must be bytes")
        array = array.astype(np.uint8)
    return array.reshape(-1).tobytes()


def descriptor_distance(a: Descriptor, b: Descriptor) -> int:
    """Hamming distance between two binary descriptors of equal length."""
    first = _as_bytes(a)
    second = _as_bytes(b)
    if len(first) != len(second):
        raise ValueError(
            f"descriptors differ in length: {len(first)} and {len(second)} bytes"
        )
    diff = int.from_bytes(first, "little") ^ int.from_bytes(second, "little")
    return bin(diff).count("1")


def _bin_size(entry) -> int:
    if hasattr(entry, "__len__"):
        return len(entry)
    return int(entry)


def compute_three_maxima(histogram) -> tuple[int | None, int | None, int | None]:
    """Indices of the three most populated bins of ``histogram``.

    Each bin is either a count or a sized collection. The second and third
    indices are ``None`` when their bin holds less than a tenth of the
    largest bin (the third is dropped first); all are ``None`` when every
    bin is empty.
    """
    max1 = max2 = max3 = 0
    ind1: int | None = None
    ind2: int | None = None
    ind3: int | None = None

    for index, entry in enumerate(histogram):
        size = _bin_size(entry)
        if size > max1:
            max3, max2, max1 = max2, max1, size
            ind3, ind2, ind1 = ind2, ind1, index
        elif size > max2:
            max3, max2 = max2, size
            ind3, ind2 = ind2, index
        elif size > max3:
            max3 = size
            ind3 = index

    limit = _MAXIMA_RATIO * np.float32(max1)
    if max2 < limit:
        ind2 = None
        ind3 = None
    elif max3 < limit:
        ind3 = None
    return ind1, ind2, ind3


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def rotation_bin(angle1: float, angle2: float) -> int:
    """Histogram bin of the rotation between two keypoint angles in degrees."""
    rot = np.float32(angle1) - np.float32(angle2)
    if rot < 0.0:
        rot = np.float32(rot + _FULL_TURN)
    index = _round_half_away(float(np.float32(rot * _BIN_FACTOR)))
    if index == HISTO_LENGTH:
        index = 0
    if not 0 <= index < HISTO_LENGTH:
        raise ValueError(
            f"rotation between {angle1} and {angle2} falls outside the histogram"
        )
    return index


def radius_by_viewing_cos(view_cos: float) -> float:
    """Search radius for a point seen at the given viewing-angle cosine."""
    return _NEAR_RADIUS if view_cos > _VIEW_COS_LIMIT else _FAR_RADIUS


def check_dist_epipolar_line(kp1: KeyPoint, kp2: KeyPoint, f12,
                             sigma2: Sequence[float]) -> bool:
    """Whether ``kp2`` lies close enough to the epipolar line of ``kp1``.

    ``f12`` is the 3x3 fundamental matrix from the first image to the
    second; ``sigma2`` holds the squared scale of each pyramid level of the
    second image and is indexed by ``kp2.octave``.
    """
    matrix = np.asarray(f12, dtype=np.float32)
    if matrix.shape != (3, 3):
        raise ValueError("the fundamental matrix must be 3x3")
    point = np.array([kp1.x, kp1.y, 1.0], dtype=np.float32)
    a, b, c = (float(v) for v in point @ matrix)

    num = a * kp2.x + b * kp2.y + c
    den = a * a + b * b
    if den == 0:
        return False
    return num * num / den < _EPIPOLAR_CHI2 * sigma2[kp2.octave]


@dataclass
class RotationHistogram:
    """Collects match indices by relative rotation to reject inconsistent ones."""

    bins: list[list[int]] = field(
        default_factory=lambda: [[] for _ in range(HISTO_LENGTH)]
    )

    def add(self, angle1: float, angle2: float, index: int) -> int:
        """File ``index`` under the rotation between the angles; return its bin."""
        target = rotation_bin(angle1, angle2)
        self.bins[target].append(index)
        return target

    def _outliers(self) -> Iterator[int]:
        kept = {i for i in compute_three_maxima(self.bins) if i is not None}
        for position, entries in enumerate(self.bins):
            if position not in kept:
                yield from entries

    def outliers(self) -> list[int]:
        """Indices filed outside the three dominant rotation bins."""
        return list(self._outliers())