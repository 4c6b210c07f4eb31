# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: the only place that mutates the source set. every edit (add/remove source, visibility, boundaries,
bulk replace, length cap growth) is applied as one complete state change and followed by a full rebuild
of the alignment and diff result. renderers never reach into the sources, they read snapshot()/result
or listen to the events handed to the publish callback.

loads finish on background threads, so everything that touches state holds one lock. a completion for a
source that was removed in the meantime, or for a load that a newer cap replaced, is dropped without a
rebuild.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import json  # for the bulk boundary payload
import logging  # for rebuild and stale-callback diagnostics
import threading  # lock shared with load completions
import time  # timestamps on published events
from collections.abc import Callable, Mapping  # type hints for callbacks and payloads
from typing import Any  # type hint for flexible dictionary values

from agent.byte_source import Blob, ByteSource, SpawnFn, spawn_thread
from algorithm import diff_engine
from algorithm.diff_engine import DiffResult

log = logging.getLogger("segdiff.controller")

# type alias for the publish callback, takes an event dict and returns nothing
PublishFn = Callable[[dict[str, Any]], None]

DEFAULT_MAX_LENGTH = 1024
DEFAULT_LENGTH_STEP = 1024


class InvalidBoundaryInput(ValueError):
    """Bulk boundary payload could not be parsed. nothing was changed."""


class UnknownSource(KeyError):
    """No source with this id is in the set."""


class EditController:
    def __init__(
        self,
        max_length: int = DEFAULT_MAX_LENGTH,
        length_step: int = DEFAULT_LENGTH_STEP,
        publish: PublishFn | None = None,
        spawn: SpawnFn = spawn_thread,
    ) -> None:
        if max_length <= 0 or length_step <= 0:
            raise ValueError("max_length and length_step must be positive")
        self.max_length = max_length  # cap applied to every source
        self.length_step = length_step  # default growth for grow_length_cap()
        self.publish = publish  # optional listener for rebuild events
        self._spawn = spawn  # how load jobs are run (thread by default)
        self._sources: list[ByteSource] = []  # ordered: comparison order is insertion order
        self._next_id = 1
        self._lock = threading.RLock()
        self._result = DiffResult()
        self.rebuilds = 0  # how many times the result was rebuilt

    # ---------------- read side ----------------

    @property
    def sources(self) -> tuple[ByteSource, ...]:
        with self._lock:
            return tuple(self._sources)

    @property
    def result(self) -> DiffResult:
        with self._lock:
            return self._result

    @property
    def any_truncated(self) -> bool:
        with self._lock:
            return any(s.truncated for s in self._sources if s.eligible)

    def get(self, source_id: int) -> ByteSource:
        with self._lock:
            for s in self._sources:
                if s.id == source_id:
                    return s
        raise UnknownSource(source_id)

    def duplicate_names(self) -> list[str]:
        with self._lock:
            seen: set[str] = set()
            shared: list[str] = []
            for s in self._sources:
                if s.name in seen and s.name not in shared:
                    shared.append(s.name)
                seen.add(s.name)
            return shared

    def export_boundaries(self) -> str:
        """
        The mapping a bulk edit starts from: name -> boundaries.
        names are keys, so sources sharing a name collapse to the last one's list; feeding the export back
        gives all of them that list. duplicate_names() tells callers when that happens.
        """
        with self._lock:
            shared = self.duplicate_names()
            if shared:
                log.warning("boundary export collapses sources sharing a name: %s", ", ".join(shared))
            return json.dumps({s.name: list(s.boundaries) for s in self._sources})

    def snapshot(self, pane_width: int | None = None) -> dict[str, Any]:
        with self._lock:
            return {
                "max_length": self.max_length,
                "length_step": self.length_step,
                "any_truncated": self.any_truncated,
                "sources": [s.to_dict() for s in self._sources],
                "diff": self._result.to_dict(pane_width),
            }

    # ---------------- edits ----------------

    def add_source(self, blob: Blob) -> ByteSource:
        with self._lock:
            source = ByteSource(self._next_id, blob, self.max_length)
            self._next_id += 1
            self._sources.append(source)
            log.info("added source %d (%s), cap %d", source.id, source.name, self.max_length)
            self._rebuild("add_source")
            # the lock is reentrant, an inline spawn may complete the load right here
            source.begin_load(self._load_done, self._spawn)
        return source

    def remove_source(self, source_id: int) -> None:
        with self._lock:
            source = self.get(source_id)
            self._sources.remove(source)
            log.info("removed source %d (%s)", source.id, source.name)
            self._rebuild("remove_source")

    def set_visibility(self, source_id: int, visible: bool) -> None:
        with self._lock:
            self.get(source_id).visible = bool(visible)
            self._rebuild("set_visibility")

    def add_boundary(self, source_id: int, offset: int) -> None:
        with self._lock:
            self.get(source_id).add_boundary(offset)
            self._rebuild("add_boundary")

    def remove_boundary(self, source_id: int, offset: int) -> None:
        with self._lock:
            self.get(source_id).remove_boundary(offset)
            self._rebuild("remove_boundary")

    def toggle_boundary(self, source_id: int, segment: int, position: int) -> str:
        """
        position-based split/merge: the first byte of a segment (other than the first segment) merges it
        into the previous one, any other byte splits its segment right there.
        lookup and edit happen under one lock hold so a load finishing in between can't shift the segments.
        returns "merge" or "split".
        """
        with self._lock:
            source = self.get(source_id)
            if not source.ready:
                raise ValueError("source is still loading")
            if segment < 0 or segment >= len(source.segments):
                raise ValueError(f"segment {segment} out of range")
            seg = source.segments[segment]
            if position < 0 or position >= seg.length:
                raise ValueError(f"position {position} outside segment {segment}")
            if position == 0:
                if segment == 0:
                    raise ValueError("the first segment has no boundary to merge")
                source.remove_boundary(seg.start)
                self._rebuild("remove_boundary")
                return "merge"
            source.add_boundary(seg.start + position)
            self._rebuild("add_boundary")
            return "split"

    def replace_boundaries(self, payload: str | bytes | Mapping[str, Any]) -> bool:
        """
        Replace boundary lists by source name. the whole payload is checked before anything is
        applied, so a bad entry anywhere rejects all of it. unknown names are ignored.
        returns True when at least one source actually changed (and a rebuild ran).
        """
        mapping = _parse_boundary_mapping(payload)
        with self._lock:
            changed = False
            for source in self._sources:
                if source.name not in mapping:
                    continue
                before = list(source.boundaries)
                source.set_boundaries(mapping[source.name])
                if source.boundaries != before:
                    changed = True
            if changed:
                self._rebuild("replace_boundaries")
            return changed

    def grow_length_cap(self, new_cap: int | None = None) -> int:
        """Raise the cap (one step by default) and reload every source up to it, boundaries kept."""
        with self._lock:
            cap = self.max_length + self.length_step if new_cap is None else int(new_cap)
            if cap <= self.max_length:
                raise ValueError(f"new cap {cap} must be larger than the current {self.max_length}")
            self.max_length = cap
            log.info("length cap raised to %d, reloading %d source(s)", cap, len(self._sources))
            for source in list(self._sources):
                source.max_length = cap
                source.begin_load(self._load_done, self._spawn)
            self._rebuild("grow_length_cap")
        return cap

    # ---------------- internals ----------------

    def _load_done(
        self,
        source: ByteSource,
        generation: int,
        data: bytes | None,
        error: BaseException | None,
    ) -> None:
        with self._lock:
            if source not in self._sources:
                log.debug("ignoring late load for removed source %d (%s)", source.id, source.name)
                return
            if generation != source.generation:
                log.debug("ignoring superseded load %d of source %d", generation, source.id)
                return
            if error is not None or data is None:
                source.fail_load(error or RuntimeError("load returned no data"))
                return  # stays pending and ineligible, nothing to rebuild
            source.complete_load(data)
            self._rebuild("source_ready")

    def _rebuild(self, reason: str) -> None:
        # full recompute from the current set, never incremental
        self._result = diff_engine.build(self._sources)
        self.rebuilds += 1
        log.debug(
            "rebuild after %s: %d segment(s), %d mismatch(es)",
            reason,
            self._result.segment_count,
            self._result.mismatch_count,
        )
        if self.publish is None:
            return
        try:
            self.publish(
                {
                    "source": "diff",
                    "reason": reason,
                    "segments": self._result.segment_count,
                    "mismatches": self._result.mismatch_count,
                    "ts": time.time(),
                }
            )
        except Exception:  # a broken listener must not undo an edit that already happened
            log.exception("publish callback failed after %s", reason)


def _parse_boundary_mapping(payload: str | bytes | Mapping[str, Any]) -> dict[str, list[int]]:
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            raise InvalidBoundaryInput(f"boundary payload is not valid JSON: {e}") from e
    else:
        data = payload

    if not isinstance(data, Mapping):
        raise InvalidBoundaryInput("boundary payload must map source names to lists of offsets")

    out: dict[str, list[int]] = {}
    for name, offsets in data.items():
        if not isinstance(name, str):
            raise InvalidBoundaryInput(f"source name must be a string, got {name!r}")
        if not isinstance(offsets, list):
            raise InvalidBoundaryInput(f"boundaries for {name!r} must be a list")
        for b in offsets:
            # bool is an int subclass, true/false are not offsets
            if isinstance(b, bool) or not isinstance(b, int):
                raise InvalidBoundaryInput(f"boundary {b!r} for {name!r} is not an integer")
        out[name] = list(offsets)
    return out
