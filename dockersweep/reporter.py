"""
Output reporting module.

Writes timestamped log lines to the console and to the run's log file,
and prints section banners and the final summary box.
"""

import logging
import os
import sys
import time
import unicodedata
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from .config import CleanupConfig, ExecutionMode
from .stages import StageResult
from .utils import format_size


LOGGER_NAME = "dockersweep"
LOG_FORMAT = "[%(asctime)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

BANNER = "━" * 34
BOX_WIDTH = 65

EMOJI_PRESENTATION = "\ufe0f"


def display_width(text: str) -> int:
    """Number of terminal columns text takes up; wide emoji count as two."""
    width = 0
    previous = 0
    for char in text:
        if char == EMOJI_PRESENTATION:
            # turns the preceding narrow symbol (the warning sign) into a wide emoji
            columns = 1 if previous == 1 else 0
        elif unicodedata.combining(char) or unicodedata.category(char) in ("Mn", "Me", "Cf"):
            columns = 0
        elif unicodedata.east_asian_width(char) in ("W", "F"):
            columns = 2
        else:
            columns = 1
        width += columns
        if char != EMOJI_PRESENTATION:
            previous = columns
    return width


class OutputLevel(Enum):
    """Output verbosity levels."""
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2


CONSOLE_LEVELS = {
    OutputLevel.QUIET: logging.WARNING,
    OutputLevel.NORMAL: logging.INFO,
    OutputLevel.VERBOSE: logging.DEBUG,
}


def new_log_path(log_dir: str, timestamp: Optional[float] = None) -> str:
    """
    Build the log file path for a run started at timestamp.

    Returns:
        str: '<log_dir>/cleanup-<unix timestamp>.log'
    """
    if timestamp is None:
        timestamp = time.time()
    return os.path.join(log_dir, f"cleanup-{int(timestamp)}.log")


class Reporter:
    """
    Handles console and log file output for a cleanup run.

    Log lines go to both the console and the log file; banners, tables
    and the summary box are console decoration only.
    """

    def __init__(self, log_file: str, level: OutputLevel = OutputLevel.NORMAL, stream=None):
        """
        Initialize the reporter.

        Args:
            log_file: Path of the append-only log file
            level: Console verbosity level
            stream: Console stream (defaults to sys.stdout)

        Raises:
            OSError: If the log file cannot be opened
        """
        self.level = level
        self.log_file = log_file
        self.stream = stream if stream is not None else sys.stdout

        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        self._file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        self._file_handler.setLevel(logging.DEBUG)
        self._file_handler.setFormatter(formatter)

        self._console_handler = logging.StreamHandler(self.stream)
        self._console_handler.setLevel(CONSOLE_LEVELS[level])
        self._console_handler.setFormatter(formatter)

        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self.logger.addHandler(self._file_handler)
        self.logger.addHandler(self._console_handler)

    def close(self) -> None:
        """Detach and close the handlers."""
        for handler in (self._console_handler, self._file_handler):
            self.logger.removeHandler(handler)
            handler.close()

    def log(self, message: str) -> None:
        self.logger.info(message)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)

    def _print(self, text: str = "") -> None:
        if self.level == OutputLevel.QUIET:
            return
        print(text, file=self.stream)

    def section(self, title: str) -> None:
        """Print a section banner."""
        self._print()
        self._print(BANNER)
        self._print(title)
        self._print(BANNER)

    def print_lines(self, lines: Iterable[str]) -> None:
        """Print preformatted lines (tables, df output) to the console."""
        for line in lines:
            self._print(line)

    def print_summary(
        self,
        config: CleanupConfig,
        results: List[StageResult],
        completed_at: Optional[datetime] = None,
    ) -> None:
        """
        Print the boxed completion summary.

        Args:
            config: Run configuration
            results: Results of the cleanup stages, in run order
            completed_at: Completion time (defaults to now)
        """
        if completed_at is None:
            completed_at = datetime.now()

        dry = config.mode == ExecutionMode.DRY
        reclaimed = sum(result.reclaimed for result in results)

        def row(text: str = "") -> str:
            content = f" {text}"
            padding = BOX_WIDTH - display_width(content)
            if padding >= 0:
                return f"│{content}{' ' * padding}│"
            return f"│{content}"

        top = "┌" + "─" * BOX_WIDTH + "┐"
        rule = "├" + "─" * BOX_WIDTH + "┤"
        bottom = "└" + "─" * BOX_WIDTH + "┘"

        lines = [
            top,
            row("CLEANUP COMPLETE".center(BOX_WIDTH - 2)),
            rule,
            row(f"App: {config.app_name}"),
            row(f"Cleanup mode: {'DRY RUN' if dry else 'EXECUTED'}"),
            row(f"App images kept: {config.keep_images} most recent"),
        ]
        if not dry:
            lines.append(row(f"Space reclaimed: {format_size(reclaimed)}"))
        lines.extend([
            row(f"Log file: {self.log_file}"),
            row(f"Completed: {completed_at.strftime('%a %b %d %H:%M:%S %Y')}"),
            rule,
            row("CLEANUP ACTIONS".center(BOX_WIDTH - 2)),
            rule,
        ])
        for result in results:
            lines.append(row(f"{result.mark} {result.describe()}"))
        lines.append(bottom)

        self.print_lines(lines)

        if dry:
            self._print()
            self.log("To execute cleanup, run: DRY_RUN=false dockersweep")
