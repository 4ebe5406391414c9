"""Build compile_commands.json by watching a build's output."""

from .classifier import Accepted, ExtractionPolicy, LineClassifier, ReasonCode, Rejected, classify
from .models import CompileRecord
from .sink import DestinationWriteError, RecordSink, SinkClosedError, SinkState

__version__ = "0.1.0"

__all__ = [
    "Accepted",
    "CompileRecord",
    "DestinationWriteError",
    "ExtractionPolicy",
    "LineClassifier",
    "ReasonCode",
    "RecordSink",
    "Rejected",
    "SinkClosedError",
    "SinkState",
    "classify",
]
