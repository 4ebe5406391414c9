"""Run a build and capture its compile steps.

Only the build's stdout drives classification. Its stderr is drained on a
separate thread so a chatty build never blocks on a full pipe; those lines
are relayed to the log and touch no shared state.
"""

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, TextIO

from .classifier import Accepted, LineClassifier
from .logging import get_logger
from .sink import RecordSink

logger = get_logger("capture")
build_logger = get_logger("build")


class CaptureError(Exception):
    """Base exception for capture errors."""

    pass


class BuildLaunchError(CaptureError):
    """Raised when the build command cannot be started."""

    pass


@dataclass
class CaptureStats:
    """Line counts for one capture run."""

    lines: int = 0
    accepted: int = 0
    rejected: int = 0

    def summary(self) -> str:
        return f"{self.accepted} compile commands from {self.lines} lines ({self.rejected} skipped)"


@dataclass
class BuildResult:
    """Outcome of a wrapped build."""

    returncode: int
    stats: CaptureStats

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def exit_status(self) -> int:
        """Shell-style status: 128 + signal number for a build killed by a signal."""
        if self.returncode < 0:
            return 128 - self.returncode
        return self.returncode


def capture_lines(
    lines: Iterable[str],
    classifier: LineClassifier,
    sink: RecordSink,
    on_line: Callable[[str], None] | None = None,
    directory: str | None = None,
) -> CaptureStats:
    """
    Classify lines in order and push every accepted record to the sink.

    Args:
        lines: Build output, one line per item (trailing newline optional)
        classifier: Classifier deciding which lines are compile steps
        sink: Open sink receiving the records
        on_line: Called with every line before classification (e.g. echo)
        directory: Directory recorded for every entry (default: queried per line)

    Returns:
        CaptureStats for the lines consumed

    Raises DestinationWriteError if the sink cannot be written; the
    remaining lines are not consumed.
    """
    stats = CaptureStats()

    for raw in lines:
        line = raw.rstrip("\r\n")
        stats.lines += 1
        if on_line is not None:
            on_line(line)

        outcome = classifier.classify(line, directory)
        if isinstance(outcome, Accepted):
            logger.info(
                "Matched: %s",
                outcome.record.to_json(),
                extra={"source": outcome.record.file},
            )
            sink.push(outcome.record)
            stats.accepted += 1
        else:
            stats.rejected += 1
            if logger.isEnabledFor(logging.DEBUG):
                codes = sorted(reason.value for reason in outcome.reasons)
                logger.debug("Skipped %r: %s", line, ", ".join(codes), extra={"reasons": codes})

    return stats


def _relay_stderr(stream: TextIO, argv: list[str]) -> None:
    context = {"build": argv, "stream": "stderr"}
    for line in stream:
        build_logger.warning("%s", line.rstrip("\r\n"), extra=context)


def run_build(
    argv: list[str],
    classifier: LineClassifier,
    sink: RecordSink,
    echo: Callable[[str], None] | None = None,
    cwd: str | None = None,
) -> BuildResult:
    """
    Run a build command and capture its compile steps into a sink.

    Args:
        argv: Build command and arguments (e.g. ["make", "-j8"])
        classifier: Classifier for stdout lines
        sink: Open sink receiving the records; the caller closes it
        echo: Called with every stdout line (to mirror the build output)
        cwd: Working directory for the build (default: current)

    Returns:
        BuildResult with the build's exit code and line counts
    """
    if not argv:
        raise BuildLaunchError("No build command given")

    logger.debug("Starting build: %s", " ".join(argv))
    try:
        process = subprocess.Popen(
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise BuildLaunchError(f"Cannot run {argv[0]}: {e}") from e

    stderr_thread = threading.Thread(
        target=_relay_stderr, args=(process.stderr, argv), name="build-stderr", daemon=True
    )
    stderr_thread.start()

    try:
        stats = capture_lines(
            process.stdout,
            classifier,
            sink,
            on_line=echo,
            directory=os.path.abspath(cwd) if cwd else None,
        )
        returncode = process.wait()
    except BaseException:
        # Sink failure or interrupt: don't leave the build running unattended
        process.kill()
        process.wait()
        raise
    finally:
        stderr_thread.join()
        process.stdout.close()
        process.stderr.close()

    logger.debug("Build exited with status %d", returncode)
    return BuildResult(returncode=returncode, stats=stats)
