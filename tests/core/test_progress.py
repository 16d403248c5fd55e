"""Tests for core/progress.py module.

Covers:
- _is_tty() function
- status() and pluralize()
- progress() generator and tracker() callbacks off a TTY
- task() context manager
- suppress_console_logs()
"""

from __future__ import annotations

from collections.abc import Iterator
from io import StringIO
from unittest.mock import patch

import pytest

from reeves.core.progress import (
    _PROGRESS_THRESHOLD,
    _is_tty,
    get_console,
    is_console_suppressed,
    pluralize,
    progress,
    status,
    suppress_console_logs,
    task,
    tracker,
)


@pytest.fixture
def console_output() -> Iterator[StringIO]:
    """Capture what the shared console prints."""
    buffer = StringIO()
    console = get_console()
    original = console._file
    console.file = buffer
    try:
        yield buffer
    finally:
        console._file = original


class TestIsTty:
    def test_false_for_stringio(self) -> None:
        with patch("sys.stderr", StringIO()):
            assert _is_tty() is False


class TestStatus:
    """Tests for status function."""

    @pytest.mark.parametrize(
        ("style", "prefix"),
        [("success", "✓ "), ("error", "✗ "), ("warning", "! "), ("info", "  "), ("none", "")],
    )
    def test_given_style_when_status_then_prefixed(
        self, console_output: StringIO, style: str, prefix: str
    ) -> None:
        status("Stored", style=style)
        assert console_output.getvalue() == f"{prefix}Stored\n"

    def test_given_indent_when_status_then_padded(self, console_output: StringIO) -> None:
        status("serde@1.0.0: timed out", style="none", indent=2)
        assert console_output.getvalue() == "  serde@1.0.0: timed out\n"


class TestPluralize:
    @pytest.mark.parametrize(
        ("count", "expected"),
        [(0, "0 crates"), (1, "1 crate"), (2, "2 crates")],
    )
    def test_regular(self, count: int, expected: str) -> None:
        assert pluralize(count, "crate") == expected

    def test_irregular(self) -> None:
        assert pluralize(3, "entry", "entries") == "3 entries"
        assert pluralize(1, "entry", "entries") == "1 entry"


class TestProgress:
    """Off a TTY, progress() is a transparent pass-through."""

    def test_yields_every_item_in_order(self) -> None:
        items = list(range(_PROGRESS_THRESHOLD + 3))
        assert list(progress(items, desc="Analyzing")) == items

    def test_accepts_unsized_iterables(self) -> None:
        assert list(progress(iter("abc"))) == ["a", "b", "c"]


class TestTracker:
    def test_off_tty_advance_is_a_noop(self) -> None:
        with tracker(100, desc="Analyzing") as advance:
            for _ in range(100):
                advance()
        assert not is_console_suppressed()


class TestTask:
    """Tests for task context manager."""

    def test_given_success_when_task_then_prints_done(self, console_output: StringIO) -> None:
        with task("Loading text index"):
            pass

        lines = console_output.getvalue().splitlines()
        assert lines[0] == "Loading text index..."
        assert lines[1].startswith("✓ Loading text index (")

    def test_given_failure_when_task_then_reraises(self, console_output: StringIO) -> None:
        with pytest.raises(RuntimeError), task("Loading text index"):
            raise RuntimeError("index locked")

        assert "✗ Loading text index failed: index locked" in console_output.getvalue()


class TestSuppressConsoleLogs:
    def test_flag_set_only_inside(self) -> None:
        assert not is_console_suppressed()
        with suppress_console_logs():
            assert is_console_suppressed()
        assert not is_console_suppressed()

    def test_flag_cleared_after_error(self) -> None:
        with pytest.raises(ValueError), suppress_console_logs():
            raise ValueError
        assert not is_console_suppressed()
