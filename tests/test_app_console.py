"""
Tests for app.console - Console entry point functionality
Tests the event bus, the summary output and the command line flow.
"""

from __future__ import annotations

import io
import os
from unittest.mock import patch

import pytest

from agent.byte_source import MemoryBlob
from app.console import (
    EventBus,
    format_summary,
    main,
    print_banner,
    start_event_printer,
    wait_until_loaded,
)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path):
    # keep a developer's data/config.json or SEGDIFF_* variables out of the way
    with patch.dict(os.environ, {"SEGDIFF_BASE_DIR": str(tmp_path)}, clear=False):
        yield


class TestEventBus:
    """Tests for EventBus class"""

    def test_event_bus_initializes(self):
        bus = EventBus()
        assert bus._subs == []

    def test_publish_sends_to_every_subscriber(self):
        bus = EventBus()
        sub1 = bus.subscribe()
        sub2 = bus.subscribe()
        event = {"source": "diff", "reason": "add_source"}
        bus.publish(event)
        assert next(sub1) == event
        assert next(sub2) == event

    def test_publish_without_subscribers(self):
        EventBus().publish({"source": "diff"})  # must not raise

    def test_event_printer_subscribes_before_starting(self):
        bus = EventBus()
        with patch("app.console.threading.Thread") as thread_cls:
            start_event_printer(bus)
            # published before the thread body ever runs
            bus.publish({"source": "diff", "reason": "add_source", "segments": 0, "mismatches": 0})

        assert len(bus._subs) == 1
        kwargs = thread_cls.call_args.kwargs
        assert kwargs["daemon"] is True
        thread_cls.return_value.start.assert_called_once()
        events = kwargs["args"][0]
        assert next(events)["reason"] == "add_source"


class TestSummary:
    def test_print_banner(self):
        out = io.StringIO()
        print_banner(out)
        assert "S  e  g  D  i  f  f" in out.getvalue()

    def test_summary_lists_mismatches(self, controller):
        controller.add_source(MemoryBlob("a.bin", b"\x01\x02\x03"))
        controller.add_source(MemoryBlob("b.bin", b"\x01\xff\x03"))
        text = format_summary(controller, pane_width=16)
        assert "a.bin" in text and "b.bin" in text
        assert "segment 0: 3 byte(s), 1 line(s)" in text
        assert "1 mismatch(es)" in text

    def test_summary_with_single_source(self, controller):
        controller.add_source(MemoryBlob("a.bin", b"abc"))
        assert "fewer than two sources" in format_summary(controller, pane_width=16)

    def test_wait_until_loaded(self, controller, deferred_controller, deferred_spawn):
        controller.add_source(MemoryBlob("a.bin", b"abc"))
        assert wait_until_loaded(controller, timeout=0.1)

        deferred_controller.add_source(MemoryBlob("b.bin", b"abc"))
        assert not wait_until_loaded(deferred_controller, timeout=0.05, poll=0.01)


class TestMain:
    """Tests for the command line entry point"""

    def test_identical_files_exit_zero(self, tmp_path, capsys):
        a = tmp_path / "a.bin"
        b = tmp_path / "b.bin"
        a.write_bytes(b"same bytes")
        b.write_bytes(b"same bytes")
        assert main([str(a), str(b)]) == 0
        assert "identical" in capsys.readouterr().out

    def test_differences_exit_one(self, tmp_path, capsys):
        a = tmp_path / "a.bin"
        b = tmp_path / "b.bin"
        a.write_bytes(b"\x00\x01\x02\x03")
        b.write_bytes(b"\x00\x01\xff\x03")
        assert main([str(a), str(b), "--boundaries", '{"a.bin": [2], "b.bin": [2]}']) == 1
        out = capsys.readouterr().out
        assert "segment 1: 2 byte(s)" in out
        assert "[0]" in out

    def test_bad_boundaries_exit_two(self, tmp_path, capsys):
        a = tmp_path / "a.bin"
        a.write_bytes(b"abc")
        assert main([str(a), "--boundaries", "{nope"]) == 2
        assert "bad --boundaries" in capsys.readouterr().err

    def test_missing_file_exit_two(self, tmp_path):
        assert main([str(tmp_path / "missing.bin")]) == 2

    def test_serve_hands_off_to_dashboard(self, tmp_path):
        a = tmp_path / "a.bin"
        a.write_bytes(b"abc")
        with patch("dashboard.app.run_dashboard") as run:
            assert main([str(a), "--serve"]) == 0
        run.assert_called_once()
