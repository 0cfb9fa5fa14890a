"""Keypoint distribution and binary-descriptor matching."""

__version__ = "0.1.0"
__all__ = [
    "keypoint",
    "octree",
    "hamming",
    "bow_matching",
    "projection",
]