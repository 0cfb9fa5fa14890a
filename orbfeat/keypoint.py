"""Keypoint record and response-based filtering."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable


@dataclass(slots=True)
class KeyPoint:
    """A detected image feature.

    ``angle`` is in degrees, ``-1`` when no orientation has been assigned.
    ``octave`` is the pyramid level the feature was found on.
    """

    x: float
    y: float
    size: float = 0.0
    angle: float = -1.0
    response: float = 0.0
    octave: int = 0

    def scaled(self, factor: float) -> "KeyPoint":
        """Return a copy whose coordinates are multiplied by ``factor``."""
        return replace(self, x=self.x * factor, y=self.y * factor)

    def shifted(self, dx: float, dy: float) -> "KeyPoint":
        """Return a copy whose coordinates are translated by ``(dx, dy)``."""
        return replace(self, x=self.x + dx, y=self.y + dy)


def retain_best(keypoints: Iterable[KeyPoint], n: int) -> list[KeyPoint]:
    """Keep the ``n`` strongest keypoints by response.

    Keypoints tied with the weakest retained response are kept as well, so
    the result may be longer than ``n``. A negative ``n`` keeps everything.
    The result is ordered by decreasing response.
    """
    points = list(keypoints)
    if n < 0 or len(points) <= n:
        return points
    if n == 0:
        return []
    ordered = sorted(points, key=lambda kp: kp.response, reverse=True)
    threshold = ordered[n - 1].response
    return [kp for kp in ordered if kp.response >= threshold]