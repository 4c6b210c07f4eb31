# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: turn a user-edited boundary list into clean boundaries and the segments they produce.
pure functions only: nothing here touches a source object, so the same helpers are reused for
validation after edits, after a length change, and by the HTTP gesture mapping.

rules
• a boundary must sit strictly inside (0, length), anything else is dropped (sanitization, not an error)
• boundaries come back sorted and unique
• segments are half-open [start, end) ranges that tile [0, length) with no gaps and no overlaps
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

from collections.abc import Iterable, Sequence  # type hints for boundary inputs
from typing import NamedTuple  # immutable (start, end) pair


class Segment(NamedTuple):
    start: int  # first offset inside the segment
    end: int  # one past the last offset

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end


def validate(boundaries: Iterable[int], length: int) -> list[int]:
    """Drop out-of-range boundaries, then sort and de-duplicate what is left."""
    if length <= 0:
        return []
    # a set both removes duplicates and lets sorted() hand back a fresh list
    return sorted({int(b) for b in boundaries if 0 < b < length})


def derive(boundaries: Sequence[int], length: int) -> list[Segment]:
    """
    Build the segment list for already validated boundaries.
    no boundaries means one segment covering everything, (0, 0) for an empty buffer.
    """
    segments: list[Segment] = []
    pos = 0  # end of the previous segment
    for end in boundaries:
        segments.append(Segment(pos, end))
        pos = end
    segments.append(Segment(pos, length))  # tail segment always runs to the end of the buffer
    return segments


def segment_at(segments: Sequence[Segment], offset: int) -> tuple[int, Segment] | None:
    # linear walk is fine, boundary lists are short and user-made
    for index, seg in enumerate(segments):
        if seg.contains(offset):
            return index, seg
    return None
