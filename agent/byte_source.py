# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: own one binary file taking part in a comparison. holds the raw bytes (capped at a maximum length),
the ready/visible flags, the user's boundary list and the segments derived from it.
loading is the only slow part, so it runs off the caller's thread: begin_load() hands a read job to a
spawn function (a daemon thread by default) and the job reports back through a callback.
each load carries a generation number so the owner can tell a late, superseded completion from the
latest one.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for reporting load failures
import os  # for getting file sizes and basenames
import threading  # for running loads in background threads
from collections.abc import Callable  # type hint for function callbacks
from typing import Protocol  # structural type for blob readers

from algorithm.segmenter import Segment, derive, validate

log = logging.getLogger("segdiff.source")

# how big each read() call is when pulling bytes off disk
READ_CHUNK = 1024 * 1024

# type alias for the spawn function, takes a zero-arg job and runs it somewhere (thread, inline, queue)
SpawnFn = Callable[[Callable[[], None]], None]
# type alias for the load callback: (source, generation, data or None, error or None)
LoadDoneFn = Callable[["ByteSource", int, "bytes | None", "BaseException | None"], None]


class LoadFailure(Exception):
    """Raised inside a load job when a blob cannot be read. the source stays pending."""


class Blob(Protocol):
    name: str

    @property
    def size(self) -> int: ...

    def read(self, limit: int) -> bytes: ...


class PathBlob:
    """a file on disk, read lazily up to a limit."""

    def __init__(self, path: str, name: str | None = None) -> None:
        self.path = path  # full path to the file
        self.name = name or os.path.basename(path)  # display name, defaults to the basename

    @property
    def size(self) -> int:
        try:
            return os.path.getsize(self.path)  # ask the filesystem, do not read anything
        except OSError:
            return 0  # unreadable files report nothing, the read itself will raise

    def read(self, limit: int) -> bytes:
        chunks: list[bytes] = []
        remaining = max(0, limit)
        try:
            with open(self.path, "rb") as f:  # open the file in binary read mode
                while remaining > 0:
                    chunk = f.read(min(READ_CHUNK, remaining))  # read at most 1MB at a time
                    if not chunk:  # end of file before the cap
                        break
                    chunks.append(chunk)
                    remaining -= len(chunk)
        except OSError as e:
            raise LoadFailure(f"cannot read {self.path}: {e}") from e
        return b"".join(chunks)


class MemoryBlob:
    """bytes already in memory (uploads, tests)."""

    def __init__(self, name: str, data: bytes) -> None:
        self.name = name
        self._data = bytes(data)  # private copy so callers can't mutate it under us

    @property
    def size(self) -> int:
        return len(self._data)

    def read(self, limit: int) -> bytes:
        return self._data[: max(0, limit)]


def spawn_thread(job: Callable[[], None]) -> None:
    threading.Thread(target=job, name="segdiff-load", daemon=True).start()


class ByteSource:
    """One loaded (or loading) file with its boundaries and segments."""

    def __init__(self, source_id: int, blob: Blob, max_length: int) -> None:
        self.id = source_id  # unique id handed out by the controller
        self.blob = blob  # where the bytes come from
        self.name = blob.name  # display name, not unique
        self.max_length = max_length  # how many leading bytes we are allowed to read
        self.visible = True  # included in comparison until the user hides it
        self.ready = False  # pending until the first load finishes
        self.truncated = False  # true when the blob is longer than max_length
        self.data = b""  # raw bytes, empty while pending
        self.boundaries: list[int] = []  # user boundaries (validated once a length is known)
        self.segments: list[Segment] = []  # derived from boundaries, empty while pending
        self.generation = 0  # bumped on every begin_load()
        self.load_error: BaseException | None = None  # last load failure, if any

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def eligible(self) -> bool:
        return self.ready and self.visible

    def begin_load(self, on_done: LoadDoneFn, spawn: SpawnFn = spawn_thread) -> int:
        """
        Start reading bytes [0, max_length) and go back to pending.
        the previous bytes are dropped right away so a half-reloaded source never takes part in a diff.
        returns the generation of this load, on_done receives it back.
        """
        self.generation += 1
        generation = self.generation
        limit = self.max_length
        blob = self.blob
        self.ready = False
        self.data = b""
        self.segments = []
        self.load_error = None

        def _job() -> None:
            try:
                data = blob.read(limit)  # the slow part
            except Exception as e:  # any read problem becomes a load failure for this source
                log.warning("load of %s failed: %s", blob.name, e)
                on_done(self, generation, None, e)
                return
            on_done(self, generation, data, None)

        spawn(_job)
        return generation

    def complete_load(self, data: bytes) -> None:
        """Install freshly read bytes, re-validate the boundaries against the new length."""
        self.data = data
        self.truncated = len(data) < self.blob.size
        self.ready = True
        self.load_error = None
        self.recompute_segments()

    def fail_load(self, error: BaseException) -> None:
        # stays pending forever, no retry
        self.load_error = error

    def recompute_segments(self) -> None:
        if not self.ready:  # no length yet, keep the raw list as typed
            return
        self.boundaries = validate(self.boundaries, self.length)
        self.segments = derive(self.boundaries, self.length)

    def add_boundary(self, offset: int) -> None:
        self.boundaries.append(int(offset))
        self.recompute_segments()

    def remove_boundary(self, offset: int) -> None:
        self.boundaries = [b for b in self.boundaries if b != offset]  # drop every occurrence
        self.recompute_segments()

    def set_boundaries(self, boundaries: list[int]) -> None:
        self.boundaries = list(boundaries)
        self.recompute_segments()

    def byte_at(self, offset: int) -> int:
        return self.data[offset]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "ready": self.ready,
            "visible": self.visible,
            "truncated": self.truncated,
            "length": self.length,
            "size": self.blob.size,
            "boundaries": list(self.boundaries),
            "segments": [[s.start, s.end] for s in self.segments],
            "error": str(self.load_error) if self.load_error else None,
        }

    def __repr__(self) -> str:
        state = "ready" if self.ready else "pending"
        return f"ByteSource(id={self.id}, name={self.name!r}, {state}, len={self.length})"
