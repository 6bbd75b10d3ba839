"""
FixFeed — live progress UI for one running fix.

Wraps rich.live.Live to show two layers:

  1. Log entries — printed above as they arrive (scroll naturally, in order)
  2. Status line — spinner + "Running <fixer>…" + step count (live)

The feed is the progress sink: hand `feed.print_entry` to the runner.
It is called from the worker thread; rich's console serializes output.

Usage:
    with FixFeed(console, fixer.name) as feed:
        future = start_fix(fixer, ..., progress=feed.print_entry)
        result = future.result()
    print_verdict(console, result)
"""

import threading

from rich.console import Console, Group
from rich.live import Live
from rich.padding import Padding
from rich.panel import Panel
from rich.spinner import Spinner
from rich.text import Text

from printfix.models import FixResult, LogEntry
from printfix.ui.theme import (
    COLOR_DIM,
    COLOR_TEXT,
    ICON_CANCEL,
    LEVEL_ICONS,
    LEVEL_STYLES,
    STATUS_COLORS,
    STATUS_ICONS,
)


class FixFeed:
    """
    Context manager for live feedback while a fix runs on a worker thread.
    """

    def __init__(self, console: Console, title: str) -> None:
        self.console = console
        self.title = title
        self.count = 0
        self.cancelling = False
        self._lock = threading.Lock()

        self._live = Live(
            console=console,
            refresh_per_second=12,
            transient=True,
        )

    # ── Context manager ───────────────────────────────────────────────────────

    def __enter__(self) -> "FixFeed":
        self._live.__enter__()
        self._live.update(self._render_status())
        return self

    def __exit__(self, *args) -> None:
        self._live.__exit__(*args)
        self.console.print()

    # ── Public API ────────────────────────────────────────────────────────────

    def print_entry(self, entry: LogEntry) -> None:
        """Progress sink: print one entry above the live area."""
        with self._lock:
            self.count += 1
            self._live.console.print(format_entry(entry))
            self._live.update(self._render_status())

    def mark_cancelling(self) -> None:
        with self._lock:
            self.cancelling = True
            self._live.update(self._render_status())

    # ── Internal rendering ────────────────────────────────────────────────────

    def _render_status(self) -> Padding:
        if self.cancelling:
            text = Text(f"  {ICON_CANCEL} Cancelling {self.title}…", style=COLOR_DIM)
        else:
            text = Text(f"  Running {self.title}…", style=COLOR_DIM)
            text.append(f"  ·  {self.count} entries", style=COLOR_DIM)
        spinner = Spinner("dots", text=text, style="cyan")
        return Padding(spinner, pad=(1, 0, 0, 2))


# ── Module-level helpers ──────────────────────────────────────────────────────

def format_entry(entry: LogEntry) -> Text:
    """
    One log line:
      12:04:31  ✅  [OK] Spooler status: Running
    """
    icon = LEVEL_ICONS.get(entry.level, "  ")
    style = LEVEL_STYLES.get(entry.level)

    line = Text()
    line.append(f"  {entry.timestamp:%H:%M:%S}  ", style=COLOR_DIM)
    line.append(f"{icon}  ", style=str(style))
    line.append(entry.message, style=COLOR_TEXT if entry.level == "info" else str(style))
    return line


def print_verdict(console: Console, result: FixResult, fixer_name: str) -> None:
    """Boxed verdict panel shown after the run."""
    icon = ICON_CANCEL if result.cancelled else STATUS_ICONS.get(result.status, "")
    color = STATUS_COLORS.get(result.status, COLOR_TEXT)

    headline = Text()
    headline.append(f"{icon}  ", style=f"bold {color}")
    headline.append(result.summary, style=f"bold {color}")

    counts: dict[str, int] = {}
    for e in result.steps:
        counts[e.level] = counts.get(e.level, 0) + 1
    tally = Text(
        "  ·  ".join(f"{counts.get(level, 0)} {level}" for level in ("success", "warning", "error")),
        style=COLOR_DIM,
    )

    status_label = "cancelled" if result.cancelled else result.status
    console.print(
        Panel(
            Group(headline, Text(), tally),
            title=f"[bold]{fixer_name}[/bold]",
            subtitle=status_label,
            border_style=color,
            padding=(1, 2),
        )
    )
