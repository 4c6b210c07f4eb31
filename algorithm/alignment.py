# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: line up segments across sources by index. segment i of every eligible source is compared with
segment i of every other one, whatever their contents. this module works out which sources count
(ready and visible) and how many offsets each segment index spans (the longest participant wins).
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any


def eligible(sources: Iterable[Any]) -> list[Any]:
    """Sources that are loaded and not hidden, in their original order."""
    return [s for s in sources if s.ready and s.visible]


def segment_lengths(sources: Iterable[Any]) -> list[int]:
    """
    Per segment index, the longest segment among eligible sources that have one there.
    sources with fewer boundaries simply have nothing to say about the higher indices.
    """
    ready = eligible(sources)
    if not ready:
        return []

    count = max(len(s.segments) for s in ready)
    lengths: list[int] = []
    for i in range(count):
        lengths.append(max(s.segments[i].length for s in ready if i < len(s.segments)))
    return lengths


def lines_per_segment(lengths: Sequence[int], pane_width: int) -> list[int]:
    # display helper for renderers: how many rows of pane_width bytes each segment needs
    if pane_width <= 0:
        raise ValueError(f"pane width must be positive, got {pane_width}")
    return [math.ceil(n / pane_width) for n in lengths]
