"""Quadtree spreading of keypoints over an image region."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable

from .keypoint import KeyPoint

Corner = tuple[int, int]


@dataclass(eq=False)
class ExtractorNode:
    """A rectangular region of the quadtree and the keypoints inside it.

    Corners are ``(x, y)`` pairs: upper-left, upper-right, bottom-left and
    bottom-right. ``no_more`` marks a node that holds a single keypoint and
    is never divided again.
    """

    ul: Corner
    ur: Corner
    bl: Corner
    br: Corner
    keys: list[KeyPoint] = field(default_factory=list)
    no_more: bool = False

    def divide(self) -> tuple["ExtractorNode", "ExtractorNode",
                              "ExtractorNode", "ExtractorNode"]:
        """Split into four quadrants and share the keypoints out among them.

        The quadrants are returned in the order upper-left, upper-right,
        bottom-left, bottom-right.
        """
        half_x = math.ceil((self.ur[0] - self.ul[0]) / 2)
        half_y = math.ceil((self.br[1] - self.ul[1]) / 2)
        mid_x = self.ul[0] + half_x
        mid_y = self.ul[1] + half_y

        n1 = ExtractorNode(
            ul=self.ul,
            ur=(mid_x, self.ul[1]),
            bl=(self.ul[0], mid_y),
            br=(mid_x, mid_y),
        )
        n2 = ExtractorNode(ul=n1.ur, ur=self.ur, bl=n1.br, br=(self.ur[0], mid_y))
        n3 = ExtractorNode(ul=n1.bl, ur=n1.br, bl=self.bl, br=(n1.br[0], self.bl[1]))
        n4 = ExtractorNode(ul=n3.ur, ur=n2.br, bl=n3.br, br=self.br)

        for kp in self.keys:
            if kp.x < n1.ur[0]:
                (n1 if kp.y < n1.br[1] else n3).keys.append(kp)
            elif kp.y < n1.br[1]:
                n2.keys.append(kp)
            else:
                n4.keys.append(kp)

        for child in (n1, n2, n3, n4):
            if len(child.keys) == 1:
                child.no_more = True
        return n1, n2, n3, n4


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _push_children(nodes: deque, node: ExtractorNode,
                   expandable: list[ExtractorNode]) -> None:
    for child in node.divide():
        if child.keys:
            nodes.appendleft(child)
            if len(child.keys) > 1:
                expandable.append(child)


def _refine(nodes: deque, expandable: list[ExtractorNode], n: int) -> None:
    """Divide the most populated nodes first until ``n`` nodes exist."""
    while True:
        prev_size = len(nodes)
        ordered = sorted(expandable, key=lambda node: len(node.keys))
        expandable = []
        for node in reversed(ordered):
            _push_children(nodes, node, expandable)
            nodes.remove(node)
            if len(nodes) >= n:
                break
        if len(nodes) >= n or len(nodes) == prev_size:
            return


def distribute_oct_tree(keypoints: Iterable[KeyPoint], min_x: int, max_x: int,
                        min_y: int, max_y: int, n: int) -> list[KeyPoint]:
    """Spread ``keypoints`` evenly over the region and keep about ``n`` of them.

    Keypoint coordinates are taken relative to ``(min_x, min_y)``. The region
    is divided into quadrants until there are at least ``n`` non-empty nodes
    or no node can be split further; the strongest keypoint of each node is
    returned.
    """
    keys = list(keypoints)
    width = max_x - min_x
    height = max_y - min_y
    if width <= 0 or height <= 0:
        raise ValueError("the region must have a positive width and height")

    n_ini = max(1, _round_half_away(width / height))
    h_x = width / n_ini

    initial = [
        ExtractorNode(
            ul=(int(h_x * i), 0),
            ur=(int(h_x * (i + 1)), 0),
            bl=(int(h_x * i), height),
            br=(int(h_x * (i + 1)), height),
        )
        for i in range(n_ini)
    ]
    for kp in keys:
        index = min(max(int(kp.x / h_x), 0), n_ini - 1)
        initial[index].keys.append(kp)

    nodes: deque[ExtractorNode] = deque(node for node in initial if node.keys)
    for node in nodes:
        node.no_more = len(node.keys) == 1

    while True:
        prev_size = len(nodes)
        expandable: list[ExtractorNode] = []
        survivors: deque[ExtractorNode] = deque()
        for node in nodes:
            if node.no_more:
                survivors.append(node)
            else:
                _push_children(survivors, node, expandable)
        nodes = survivors

        if len(nodes) >= n or len(nodes) == prev_size:
            break
        if len(nodes) + 3 * len(expandable) > n:
            _refine(nodes, expandable, n)
            break

    return [max(node.keys, key=lambda kp: kp.response) for node in nodes]