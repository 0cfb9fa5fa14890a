# orbfeat

Building blocks for the feature side of a visual SLAM front end: a keypoint
record, quadtree spreading of keypoints over an image region, Hamming
distances between 256-bit binary descriptors, rotation-consistency checks,
and several strategies for matching features between views. Built on NumPy.

## Modules

- `orbfeat.keypoint`: the `KeyPoint` dataclass (`x`, `y`, `size`, `angle`
  in degrees, `response`, `octave`) with `scaled` and `shifted` copies, and
  `retain_best(keypoints, n)`, which keeps the strongest keypoints by
  response (ties with the weakest kept response are kept too).
- `orbfeat.octree`: `ExtractorNode` and `distribute_oct_tree(keypoints,
  min_x, max_x, min_y, max_y, n)`, which divides a region into quadrants
  until about `n` non-empty nodes exist and returns the strongest keypoint
  of each node.
- `orbfeat.hamming`: `descriptor_distance`, `compute_three_maxima`,
  `rotation_bin`, `radius_by_viewing_cos`, `check_dist_epipolar_line` and
  `RotationHistogram`, plus the thresholds `TH_HIGH`, `TH_LOW` and
  `HISTO_LENGTH`.
- `orbfeat.bow_matching`: `MatchView`, which holds a view's keypoints,
  descriptors, vocabulary feature vector, per-feature landmarks and
  right-image coordinates, and the matchers `search_by_bow`,
  `search_for_initialization` and `search_for_triangulation`.
- `orbfeat.projection`: `Camera` (pinhole intrinsics, image bounds, pyramid
  scales), `MapLandmark` (3-D point, descriptor, viewing normal, distance
  range), and the matchers `search_by_projection` and `search_by_sim3`.

## Installation

```
pip install .
```

Tests need the `test` extra:

```
pip install ".[test]"
pytest
```

## Examples

Hamming distance between two 32-byte descriptors:

```python
from orbfeat.hamming import descriptor_distance

a = bytes(32)
b = bytes([0xFF]) + bytes(31)
print(descriptor_distance(a, b))   # 8
```

Spreading keypoints over a region:

```python
from orbfeat.keypoint import KeyPoint
from orbfeat.octree import distribute_oct_tree

points = [KeyPoint(x=float(i % 40), y=float(i // 40), response=float(i)) for i in range(400)]
kept = distribute_oct_tree(points, 0, 40, 0, 10, 20)
print(len(kept))
```

Rotation consistency:

```python
from orbfeat.hamming import RotationHistogram

hist = RotationHistogram()
hist.add(10.0, 5.0, 0)
hist.add(12.0, 7.0, 1)
hist.add(200.0, 5.0, 2)
print(hist.outliers())   # indices outside the dominant rotation bins; here []
```

Bag-of-words guided matching:

```python
import numpy as np
from orbfeat.bow_matching import MatchView, search_by_bow
from orbfeat.keypoint import KeyPoint

desc = np.zeros((1, 32), dtype=np.uint8)
first = MatchView([KeyPoint(10, 10, angle=0)], desc, {7: [0]}, landmarks=["point"])
second = MatchView([KeyPoint(12, 11, angle=0)], desc, {7: [0]})
print(search_by_bow(first, second))   # ['point']
```

## What this package does not do

It does not detect features in images. There is no image pyramid, corner
detector, orientation or descriptor computation here: keypoints and their
descriptors must come from elsewhere and are handed to the package as
`KeyPoint` records and `uint8` arrays. Nor does it hold a map, keyframes or
a vocabulary; the matchers take these as plain arguments and return their
results without changing any shared state.