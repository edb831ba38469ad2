"""CLI progress rendering for generation runs."""

from __future__ import annotations

import os
import shutil
import sys
import threading
import time
from typing import TextIO

from .runs.events import ProgressEvent

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_RED = "\x1b[31m"
_RESET = "\x1b[0m"


def progress_line(label: str, start: float | None = None, done: bool = False) -> tuple[str, float]:
    now = time.monotonic()
    origin = now if start is None else start
    elapsed = max(0, int(now - origin))
    minutes, seconds = divmod(elapsed, 60)
    suffix = "done" if done else "ctrl-c to cancel"
    return f"• {label} ({minutes}m {seconds:02d}s • {suffix})", origin


def elapsed_line(label: str, seconds: float, width: int | None = None) -> str:
    duration = _format_duration(int(max(0, seconds)))
    resolved_width = width if width is not None else _resolve_terminal_width(sys.stderr, 100)
    return f"{_GREY}{_separator_line(f'{label} {duration}', resolved_width)}{_RESET}"


def event_line(event: ProgressEvent) -> str | None:
    """One human-readable line per event; plain counters are folded into the ticker label."""
    if event.type == "image":
        return f"  ✓ image {event.index} ready: {event.url}"
    if event.type == "error":
        return f"  {_RED}✗ image {event.index} failed: {event.message}{_RESET}"
    if event.type == "completed":
        return f"  {event.generated}/{event.total} images generated"
    return None


class ProgressTicker:
    """Single status line, redrawn in place on a TTY and printed once otherwise."""

    def __init__(
        self,
        label: str,
        start: float | None = None,
        stream: TextIO | None = None,
        interval_s: float = 1.0,
    ) -> None:
        self.label = label
        self.start = start
        self.stream = stream or sys.stderr
        self.interval_s = max(0.2, interval_s)
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._enabled = bool(getattr(self.stream, "isatty", lambda: False)())
        self._started = False

    def start_ticking(self) -> None:
        line, origin = progress_line(self.label, self.start)
        self.start = origin
        if not self._enabled:
            self._write(f"{_BOLD}{line}{_RESET}\n")
            return
        self._redraw(f"{_BOLD}{line}{_RESET}")
        self._started = True
        self._thread.start()

    def stop(self, done: bool = True) -> None:
        if self._started:
            self._stop.set()
            self._thread.join()
        if done:
            self._write_done_line()
        elif self._enabled:
            line, _ = progress_line(self.label, self.start)
            self._redraw(f"{_BOLD}{line}{_RESET}", newline=True)

    def update_label(self, label: str) -> None:
        self.label = label
        if not self._started or self._stop.is_set():
            return
        line, _ = progress_line(self.label, self.start)
        self._redraw(f"{_BOLD}{line}{_RESET}")

    def note(self, text: str) -> None:
        """Print a line above the ticker without breaking the in-place redraw."""
        if not self._enabled or not self._started:
            self._write(f"{text}\n")
            return
        line, _ = progress_line(self.label, self.start)
        self._write(f"\r\033[K{text}\n{_BOLD}{line}{_RESET}")

    def __call__(self, event: ProgressEvent) -> None:
        if event.type == "progress" and event.total:
            self.update_label(f"Generating images {event.generated}/{event.total}")
            return
        line = event_line(event)
        if line:
            self.note(line)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            line, _ = progress_line(self.label, self.start)
            self._redraw(f"{_BOLD}{line}{_RESET}")

    def _redraw(self, line: str, newline: bool = False) -> None:
        self._write(f"\r{line}\033[K{chr(10) if newline else ''}")

    def _write(self, text: str) -> None:
        with self._lock:
            self.stream.write(text)
            self.stream.flush()

    def _write_done_line(self) -> None:
        elapsed = max(0.0, time.monotonic() - (self.start or time.monotonic()))
        styled = elapsed_line("Finished in", elapsed, _resolve_terminal_width(self.stream, 100))
        if self._enabled:
            self._write(f"\r{styled}\033[K\n")
        else:
            self._write(f"{styled}\n")


def _format_duration(seconds: int) -> str:
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def _separator_line(label: str, width: int) -> str:
    content = f" {label} "
    if width <= len(content) + 2:
        return content.strip()
    remaining = width - len(content)
    left = remaining // 2
    return f"{'─' * left}{content}{'─' * (remaining - left)}"


def _resolve_terminal_width(stream: TextIO | None, fallback: int) -> int:
    if stream is not None and hasattr(stream, "fileno"):
        try:
            return os.get_terminal_size(stream.fileno()).columns
        except (OSError, ValueError):
            pass
    return shutil.get_terminal_size(fallback=(fallback, 20)).columns
