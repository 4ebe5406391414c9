"""Stream compile records into a compile_commands.json array.

The number of entries is unknown until the build exits, so the array is
written incrementally: the opening bracket on open, one object per push
(comma separated), the closing bracket on close. Every write is flushed, so
entries pushed before a crash are already on disk. Memory use stays at one
record regardless of build size.

If the process dies before close, the file lacks its closing bracket and
is not valid JSON. Using the sink as a context manager closes it on any
exit from the block, including KeyboardInterrupt.
"""

from enum import Enum
from pathlib import Path
from typing import TextIO

from .logging import get_logger
from .models import CompileRecord

logger = get_logger("sink")

ARRAY_OPEN = "[\n"
ARRAY_CLOSE = "\n]\n"
SEPARATOR = ",\n"


class SinkError(Exception):
    """Base exception for record sink errors."""

    pass


class SinkClosedError(SinkError):
    """Raised when pushing to a sink that has already been closed."""

    pass


class DestinationWriteError(SinkError):
    """Raised when the destination stream rejects a write."""

    pass


class SinkState(Enum):
    """Position of the sink within the array it is writing."""

    BEFORE_FIRST = "before_first"
    AFTER_FIRST = "after_first"
    CLOSED = "closed"


class RecordSink:
    """Incremental JSON array writer with exclusive use of its stream."""

    def __init__(self, stream: TextIO, name: str = "<stream>", owns_stream: bool = False):
        self._stream = stream
        self._owns_stream = owns_stream
        self.name = name
        self.state = SinkState.BEFORE_FIRST
        self.count = 0
        self._write(ARRAY_OPEN)
        self._flush()

    @classmethod
    def open(cls, destination: Path | str | TextIO) -> "RecordSink":
        """
        Begin a database at a path or on an open text stream.

        Paths are truncated and their parent directories created. Streams
        are left open on close; the caller owns them.

        Raises DestinationWriteError if the destination cannot be opened.
        """
        if isinstance(destination, (str, Path)):
            path = Path(destination)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                stream = open(path, "w", encoding="utf-8")
            except OSError as e:
                raise DestinationWriteError(f"Cannot open {path}: {e}") from e
            logger.debug("Writing compilation database to %s", path)
            try:
                return cls(stream, name=str(path), owns_stream=True)
            except DestinationWriteError:
                stream.close()
                raise

        return cls(destination, name=getattr(destination, "name", "<stream>"))

    @property
    def closed(self) -> bool:
        return self.state is SinkState.CLOSED

    def push(self, record: CompileRecord) -> None:
        """Append one record to the array and flush it to the destination."""
        if self.state is SinkState.CLOSED:
            raise SinkClosedError(f"Cannot push to closed sink {self.name}")

        payload = record.to_json()
        if self.state is SinkState.AFTER_FIRST:
            payload = SEPARATOR + payload

        self._write(payload)
        self._flush()
        self.state = SinkState.AFTER_FIRST
        self.count += 1

    def close(self) -> None:
        """Write the closing bracket and flush. Closing twice is a no-op."""
        if self.state is SinkState.CLOSED:
            return

        self.state = SinkState.CLOSED
        try:
            self._write(ARRAY_CLOSE)
            self._flush()
        finally:
            if self._owns_stream:
                self._stream.close()

        logger.debug("Closed %s with %d entries", self.name, self.count)

    def _write(self, text: str) -> None:
        try:
            self._stream.write(text)
        except (OSError, ValueError) as e:
            raise DestinationWriteError(f"Failed to write to {self.name}: {e}") from e

    def _flush(self) -> None:
        try:
            self._stream.flush()
        except (OSError, ValueError) as e:
            raise DestinationWriteError(f"Failed to flush {self.name}: {e}") from e

    def __enter__(self) -> "RecordSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.close()
        except DestinationWriteError:
            # Keep the original error when the block is already failing
            if exc_type is None:
                raise
            logger.warning("Could not finalize %s after an earlier error", self.name)
