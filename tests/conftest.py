from __future__ import annotations

from collections.abc import Callable

import pytest

from agent.byte_source import ByteSource, MemoryBlob
from app.controller import EditController


def make_source(
    data: bytes, boundaries: list[int] | None = None, source_id: int = 1, name: str | None = None
) -> ByteSource:
    """A ready source without going through a load job."""
    src = ByteSource(source_id, MemoryBlob(name or f"s{source_id}.bin", data), max_length=1 << 20)
    src.boundaries = list(boundaries or [])
    src.complete_load(data)
    return src


class DeferredSpawn:
    """Collects load jobs so a test decides when (and whether) each one finishes."""

    def __init__(self) -> None:
        self.jobs: list[Callable[[], None]] = []

    def __call__(self, job: Callable[[], None]) -> None:
        self.jobs.append(job)

    def run(self, index: int = 0) -> None:
        self.jobs.pop(index)()

    def run_all(self) -> None:
        while self.jobs:
            self.run()


@pytest.fixture()
def inline_spawn():
    """Runs load jobs immediately on the calling thread."""
    return lambda job: job()


@pytest.fixture()
def deferred_spawn() -> DeferredSpawn:
    return DeferredSpawn()


@pytest.fixture()
def events() -> list[dict]:
    return []


@pytest.fixture()
def controller(inline_spawn, events) -> EditController:
    return EditController(max_length=1024, length_step=1024, publish=events.append, spawn=inline_spawn)


@pytest.fixture()
def deferred_controller(deferred_spawn, events) -> EditController:
    return EditController(max_length=1024, length_step=1024, publish=events.append, spawn=deferred_spawn)
