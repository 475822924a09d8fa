"""
Progress reporting for long-running engine operations.

Export and restore report progress through an observer object supplied
by the caller. The observer has one method per event class:

    status(message)   Free-text step description ("Creating playlist: X")
    percent(value)    Overall completion, 0.0 - 100.0
    counts(counts)    RestoreCounts snapshot (restore only)

All methods are invoked synchronously from the engine's single control
flow; an observer never has to be thread-safe.

Implementations:
    ProgressObserver: Base class, every event is a no-op.
    LoggingProgressObserver: Forwards events to a logger.
    RichProgressObserver: Rich progress bar used by the CLI.

Usage:
    with RichProgressObserver("Restoring") as observer:
        summary = reconciler.restore(payload, observer=observer)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from rich import get_console
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.theme import Theme


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})


@dataclass(frozen=True)
class RestoreCounts:
    """
    Incremental counters emitted during a restore.

    Attributes:
        liked_done: Liked track ids written so far.
        liked_total: Liked track ids in the payload.
        playlists_done: Playlist records fully processed so far.
        playlists_total: Playlist records in the payload.
    """
    liked_done: int
    liked_total: int
    playlists_done: int
    playlists_total: int

    @property
    def fraction(self) -> float:
        total = self.liked_total + self.playlists_total
        if total == 0:
            return 1.0
        return (self.liked_done + self.playlists_done) / total


class ProgressObserver:
    """
    Observer interface for engine progress. Every event is a no-op here;
    subclasses override the events they care about.
    """

    def status(self, message: str) -> None:
        pass

    def percent(self, value: float) -> None:
        pass

    def counts(self, counts: RestoreCounts) -> None:
        pass


class LoggingProgressObserver(ProgressObserver):
    """Forwards progress events to a logger (status at INFO, the rest at DEBUG)."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def status(self, message: str) -> None:
        self.logger.info(message)

    def percent(self, value: float) -> None:
        self.logger.debug(f"Progress: {value:.0f}%")

    def counts(self, counts: RestoreCounts) -> None:
        self.logger.debug(
            f"Liked {counts.liked_done}/{counts.liked_total}, "
            f"playlists {counts.playlists_done}/{counts.playlists_total}"
        )


class RichProgressObserver(ProgressObserver):
    """
    Single Rich progress bar driven by observer events.

    Displays:
    - Description (e.g., "Restoring")
    - Current status text
    - Progress bar
    - Percentage

    Example:
        Restoring   Adding tracks: Road Trip (100/250)  ━━━━━━━━━━━━━━  47%

    Status messages are also printed above the bar when `echo` is set,
    so the terminal keeps a trace of each step.
    """

    def __init__(self, description: str, echo: bool = False) -> None:
        self.description = description
        self.echo = echo

        self.console = get_console()

        self.progress = Progress(
            TextColumn("[white]{task.description:<12}"),
            TextColumn("{task.fields[status]}", style="white"),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )

        self.task_id: Optional[TaskID] = None
        self._started = False

    def __enter__(self) -> "RichProgressObserver":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        if not self._started:
            self.console.push_theme(PROGRESS_THEME)
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description, total=100, status=""
            )
            self._started = True

    def stop(self) -> None:
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def status(self, message: str) -> None:
        if self.echo:
            self.progress.console.print(message, highlight=False)
        if self.task_id is not None:
            self.progress.update(self.task_id, status=message[:50])

    def percent(self, value: float) -> None:
        if self.task_id is not None:
            self.progress.update(self.task_id, completed=max(0.0, min(100.0, value)))

    def counts(self, counts: RestoreCounts) -> None:
        self.percent(counts.fraction * 100)
