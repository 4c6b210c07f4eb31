# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: command line launcher for segdiff. loads the given files into an edit controller, applies an optional
bulk boundary mapping, and either prints a per-segment mismatch summary or serves the JSON API so an
external renderer can drive the comparison. controller rebuild events fan out through an event bus.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import argparse  # for parsing command line arguments
import logging  # for configuring log output once for the whole process
import queue  # for event bus message queues
import sys  # for stdout/stderr and the exit code
import threading  # for the event bus lock and the event printer thread
import time  # for waiting on loads
from collections.abc import Iterator  # type hint for the subscription iterator
from functools import lru_cache  # colorama init runs once per process
from pathlib import Path  # for working with file paths
from typing import Any, TextIO  # type hints

from agent.byte_source import PathBlob
from app.controller import EditController, InvalidBoundaryInput
from dashboard.config import Config, load_config

log = logging.getLogger("segdiff.console")


@lru_cache(maxsize=1)
def _colors() -> dict[str, str]:
    # ANSI color codes if available (Windows via colorama), otherwise plain text
    try:
        from colorama import init as _colorama_init

        _colorama_init()  # enable ANSI color codes on Windows terminals
        return {
            "cyan": "\x1b[36m",
            "mag": "\x1b[35m",
            "red": "\x1b[31m",
            "dim": "\x1b[2m",
            "bold": "\x1b[1m",
            "reset": "\x1b[0m",
        }
    except Exception:  # if colorama is not available or import fails
        return dict.fromkeys(("cyan", "mag", "red", "dim", "bold", "reset"), "")


# --- ASCII banner ---
def print_banner(out: TextIO | None = None) -> None:
    out = out or sys.stdout
    c = _colors()
    banner = (
        f"{c['dim']}┌──────────────────────────────────────────┐{c['reset']}\n"
        f"{c['dim']}│{c['reset']}{c['cyan']}{c['bold']}        S  e  g  D  i  f  f{c['reset']}"
        f"{c['dim']}               │{c['reset']}\n"
        f"{c['dim']}│{c['reset']}{c['mag']}   segmented multi-file byte comparison{c['reset']}"
        f"{c['dim']}   │{c['reset']}\n"
        f"{c['dim']}└──────────────────────────────────────────┘{c['reset']}\n"
    )
    out.write(banner)


# fan-out EventBus
class EventBus:
    """pub/sub fan-out: each subscriber gets every event."""

    def __init__(self) -> None:
        self._subs: list[queue.Queue] = []  # list of subscriber queues
        self._lock = threading.Lock()  # lock to protect the subscribers list from race conditions

    def publish(self, event: dict[str, Any]) -> None:
        # send an event to all subscribers (fan-out pattern)
        with self._lock:
            subs = list(self._subs)  # copy so we can iterate without holding the lock
        for q in subs:
            try:
                q.put_nowait(event)
            except queue.Full:
                pass  # drop the event to avoid backpressure (better to lose events than block)

    def subscribe(self):
        # create a new subscription and return an iterator that yields events
        q: queue.Queue = queue.Queue(maxsize=1000)
        with self._lock:
            self._subs.append(q)

        def _iter():
            while True:
                try:
                    yield q.get(timeout=0.5)  # wait up to 0.5 seconds for an event
                except queue.Empty:
                    yield None  # keep the iterator alive

        return _iter()


def wait_until_loaded(controller: EditController, timeout: float, poll: float = 0.05) -> bool:
    """Block until every source is ready or failed, True when all of them are ready."""
    deadline = time.monotonic() + timeout
    while True:
        sources = controller.sources
        if all(s.ready or s.load_error is not None for s in sources):
            return all(s.ready for s in sources)
        if time.monotonic() >= deadline:
            return False
        time.sleep(poll)


def format_summary(controller: EditController, pane_width: int) -> str:
    c = _colors()
    result = controller.result
    by_id = {s.id: s for s in controller.sources}
    lines: list[str] = []

    for s in controller.sources:
        state = "ready" if s.ready else ("failed" if s.load_error else "pending")
        flags = []
        if not s.visible:
            flags.append("hidden")
        if s.truncated:
            flags.append(f"truncated at {s.length}")
        extra = f" ({', '.join(flags)})" if flags else ""
        lines.append(f"{c['cyan']}{s.name}{c['reset']} [{state}]{extra} boundaries={s.boundaries}")

    if len(result.source_ids) < 2:
        lines.append(f"{c['dim']}fewer than two sources to compare{c['reset']}")
        return "\n".join(lines)

    names = ", ".join(by_id[i].name for i in result.source_ids if i in by_id)
    lines.append(f"comparing {names}")
    rows = result.lines_per_segment(pane_width)
    for i, (length, diffs) in enumerate(zip(result.segment_lengths, result.diff_sets)):
        head = f"segment {i}: {length} byte(s), {rows[i]} line(s)"
        if not diffs:
            lines.append(f"{head}, identical")
            continue
        offsets = sorted(diffs)
        shown = ", ".join(str(p) for p in offsets[:16])
        more = f" ... +{len(offsets) - 16}" if len(offsets) > 16 else ""
        lines.append(f"{head}, {c['red']}{len(offsets)} mismatch(es){c['reset']} at [{shown}{more}]")

    if controller.any_truncated:
        lines.append(
            f"{c['mag']}only the first {controller.max_length} bytes were compared, "
            f"raise --max-length to see more{c['reset']}"
        )
    return "\n".join(lines)


def _print_events(events: Iterator[dict[str, Any] | None]) -> None:
    # debug helper: echo controller rebuild events as they happen
    for ev in events:
        if ev is None:
            continue
        log.debug("event %s: %d segment(s), %d mismatch(es)", ev["reason"], ev["segments"], ev["mismatches"])


def start_event_printer(bus: EventBus) -> threading.Thread:
    # subscribe before the thread starts so the first rebuild events are not missed
    events = bus.subscribe()
    t = threading.Thread(target=_print_events, args=(events,), name="event-printer", daemon=True)
    t.start()
    return t


def build_parser(cfg: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="segdiff", description="segmented multi-file byte diff")
    parser.add_argument("files", nargs="*", help="files to compare")
    parser.add_argument(
        "--boundaries",
        help='JSON mapping of file name to boundary offsets, e.g. \'{"a.bin": [4, 10]}\'',
    )
    parser.add_argument("--max-length", type=int, default=cfg.max_length, help="bytes read per file")
    parser.add_argument("--pane-width", type=int, default=cfg.pane_width, help="bytes per display line")
    parser.add_argument("--serve", action="store_true", help="serve the JSON API instead of printing")
    parser.add_argument("--timeout", type=float, default=30.0, help="seconds to wait for files to load")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    cfg = load_config()
    args = build_parser(cfg).parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # silence waitress log messages so the console stays clean
    logging.getLogger("waitress").setLevel(logging.ERROR)

    if args.max_length <= 0 or args.pane_width <= 0:
        print("--max-length and --pane-width must be positive", file=sys.stderr)
        return 2

    bus = EventBus()
    if args.verbose:
        start_event_printer(bus)

    controller = EditController(
        max_length=args.max_length, length_step=cfg.length_step, publish=bus.publish
    )
    for name in args.files:
        if not Path(name).is_file():
            print(f"not a file: {name}", file=sys.stderr)
            return 2
        controller.add_source(PathBlob(name))

    if args.boundaries:
        # boundaries are validated against lengths, so the files need to be in first
        wait_until_loaded(controller, args.timeout)
        try:
            controller.replace_boundaries(args.boundaries)
        except InvalidBoundaryInput as e:
            print(f"bad --boundaries: {e}", file=sys.stderr)
            return 2

    if args.serve:
        from dashboard.app import run_dashboard

        print_banner()
        print(f"serving on http://{cfg.host}:{cfg.port}  (Ctrl+C to stop)")
        run_dashboard(controller, cfg)
        return 0

    if not wait_until_loaded(controller, args.timeout):
        failed = [s.name for s in controller.sources if not s.ready]
        print(f"could not load: {', '.join(failed)}", file=sys.stderr)
        return 1
    print(format_summary(controller, args.pane_width))
    result = controller.result
    return 1 if result.mismatch_count else 0


if __name__ == "__main__":
    sys.exit(main())
