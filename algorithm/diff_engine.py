# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: find, for every aligned segment, the offsets where the eligible sources disagree.
stateless and total: give it any set of sources (even none) and it hands back a well-formed result.

what this engine does
every eligible source (ready and visible) is cut into segments by its boundaries. segments are paired
across sources by index only, so segment 2 of file A is compared with segment 2 of file B even if the
bytes inside have nothing in common. inside one segment index the comparison is purely positional:
offset p of the segment means byte start+p of every source that still has a byte there.

how it decides
for segment index i the alignment step already knows the longest segment length L. the engine walks
p = 0, 1, 2, ... up to L and at each step:

1. collects the active sources, the ones whose segment i still contains start+p
2. stops the whole segment once fewer than two are active. segments all start at offset 0 of the
   segment, so a source that ran out at p is out for every later p as well. the active set only
   ever shrinks, and one source alone has nothing to disagree with
3. otherwise compares every active byte with the first active source's byte and records p as a
   mismatch when any of them differs

there is no insertion or deletion handling, no realignment and no partial update. every rebuild starts
from scratch and costs roughly the number of eligible bytes scanned.

outputs you get (always)
DiffResult(
    source_ids=[...],          # eligible sources in comparison order
    segment_lengths=[...],     # per segment index, how many offsets were in play
    diff_sets=[{...}, ...],    # per segment index, offsets in mismatch
)
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

from collections.abc import Iterable, Sequence  # type hints for the source lists
from dataclasses import dataclass, field  # for the result container
from typing import Any  # sources are duck-typed (ready, visible, segments, data)

from algorithm.alignment import eligible, lines_per_segment, segment_lengths


def format_byte(value: int) -> str:
    # two lowercase hex digits, the same way every consumer shows a byte
    return f"{value:02x}"


@dataclass
class DiffResult:
    source_ids: list[int] = field(default_factory=list)
    segment_lengths: list[int] = field(default_factory=list)
    diff_sets: list[set[int]] = field(default_factory=list)

    @property
    def segment_count(self) -> int:
        return len(self.segment_lengths)

    @property
    def mismatch_count(self) -> int:
        return sum(len(s) for s in self.diff_sets)

    def is_mismatch(self, segment: int, offset: int) -> bool:
        if segment < 0 or segment >= len(self.diff_sets):  # unknown segment index means no mismatch
            return False
        return offset in self.diff_sets[segment]

    def lines_per_segment(self, pane_width: int) -> list[int]:
        return lines_per_segment(self.segment_lengths, pane_width)

    def to_dict(self, pane_width: int | None = None) -> dict[str, Any]:
        """Convert to a JSON friendly dict (sets become sorted lists)."""
        out: dict[str, Any] = {
            "source_ids": list(self.source_ids),
            "segment_lengths": list(self.segment_lengths),
            "diff_sets": [sorted(s) for s in self.diff_sets],
            "mismatch_count": self.mismatch_count,
        }
        if pane_width is not None:
            out["pane_width"] = pane_width
            out["lines_per_segment"] = self.lines_per_segment(pane_width)
        return out


def compute_diff_sets(
    sources: Iterable[Any], lengths: Sequence[int] | None = None
) -> list[set[int]]:
    """Mismatch offsets per segment index for the eligible members of sources."""
    ready = eligible(sources)  # only ready + visible sources take part
    if not ready:
        return []
    if lengths is None:
        lengths = segment_lengths(ready)

    diff_sets: list[set[int]] = []
    for i, seg_len in enumerate(lengths):
        mismatches: set[int] = set()
        diff_sets.append(mismatches)

        # sources that have a segment at this index at all, with that segment's bounds
        present = [(s.data, s.segments[i]) for s in ready if i < len(s.segments)]

        for p in range(seg_len):
            # each source is active while its segment still has a byte at p
            values = [data[seg.start + p] for data, seg in present if seg.start + p < seg.end]
            if len(values) < 2:  # active set only shrinks, nothing left to compare in this segment
                break
            first = values[0]
            if any(v != first for v in values[1:]):
                mismatches.add(p)
    return diff_sets


def build(sources: Iterable[Any]) -> DiffResult:
    """Full rebuild: alignment first, then the positional scan."""
    ready = eligible(sources)
    lengths = segment_lengths(ready)
    return DiffResult(
        source_ids=[s.id for s in ready],
        segment_lengths=lengths,
        diff_sets=compute_diff_sets(ready, lengths),
    )
