"""Tests for the streaming compilation database writer."""

import io
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

import compdb_capture
from compdb_capture.models import CompileRecord
from compdb_capture.sink import (
    DestinationWriteError,
    RecordSink,
    SinkClosedError,
    SinkState,
)


def make_record(n: int) -> CompileRecord:
    return CompileRecord(
        directory="/work",
        command=f"/usr/bin/gcc -c -o f{n}.o f{n}.c",
        file=f"f{n}.c",
    )


class FailingStream(io.StringIO):
    """A stream that fails after a number of writes."""

    def __init__(self, fail_after: int):
        super().__init__()
        self.fail_after = fail_after

    def write(self, text):
        if self.fail_after <= 0:
            raise OSError(28, "No space left on device")
        self.fail_after -= 1
        return super().write(text)


class TestArrayShape:
    """Bracket and comma bookkeeping."""

    def test_empty_database(self):
        """No records gives exactly an empty array."""
        stream = io.StringIO()
        sink = RecordSink.open(stream)
        sink.close()
        assert stream.getvalue() == "[\n\n]\n"
        assert json.loads(stream.getvalue()) == []

    def test_single_record_has_no_comma(self):
        """One record: no leading or trailing separator."""
        stream = io.StringIO()
        sink = RecordSink.open(stream)
        sink.push(make_record(1))
        sink.close()
        text = stream.getvalue()
        assert text == "[\n" + make_record(1).to_json() + "\n]\n"
        assert "," not in text.replace(make_record(1).to_json(), "")

    def test_order_preserved(self):
        """Records come back in push order with every field."""
        stream = io.StringIO()
        records = [make_record(n) for n in range(3)]
        with RecordSink.open(stream) as sink:
            for record in records:
                sink.push(record)
        parsed = json.loads(stream.getvalue())
        assert [CompileRecord(**entry) for entry in parsed] == records
        assert list(parsed[0]) == ["directory", "command", "file"]

    def test_count(self):
        """The sink counts pushed records."""
        with RecordSink.open(io.StringIO()) as sink:
            sink.push(make_record(1))
            sink.push(make_record(2))
        assert sink.count == 2


class TestEscaping:
    """JSON-significant characters survive the trip."""

    @pytest.mark.parametrize(
        "command",
        [
            '/usr/bin/gcc -DMSG="hi there" -c -o a.o a.c',
            "/usr/bin/gcc -DPATH=C:\\dir\\ -c -o a.o a.c",
            "/usr/bin/gcc -c -o a.o a.c\n-DX=1",
            "/usr/bin/gcc -c\t-o a.o a.c \x01 \u00e9",
        ],
    )
    def test_round_trip(self, command):
        """Quotes, backslashes and control characters are escaped."""
        record = CompileRecord(directory='/wo"rk\\', command=command, file="a.c")
        stream = io.StringIO()
        with RecordSink.open(stream) as sink:
            sink.push(record)
        assert CompileRecord(**json.loads(stream.getvalue())[0]) == record


class TestLifecycle:
    """State machine and error handling."""

    def test_states(self):
        """The sink moves BEFORE_FIRST -> AFTER_FIRST -> CLOSED."""
        sink = RecordSink.open(io.StringIO())
        assert sink.state is SinkState.BEFORE_FIRST
        sink.push(make_record(1))
        assert sink.state is SinkState.AFTER_FIRST
        sink.close()
        assert sink.state is SinkState.CLOSED
        assert sink.closed

    def test_push_after_close(self):
        """Pushing to a closed sink fails."""
        sink = RecordSink.open(io.StringIO())
        sink.close()
        with pytest.raises(SinkClosedError):
            sink.push(make_record(1))

    def test_close_twice(self):
        """A second close writes nothing."""
        stream = io.StringIO()
        sink = RecordSink.open(stream)
        sink.close()
        sink.close()
        assert stream.getvalue() == "[\n\n]\n"

    def test_caller_stream_left_open(self):
        """Streams passed in are not closed by the sink."""
        stream = io.StringIO()
        RecordSink.open(stream).close()
        assert not stream.closed

    def test_write_failure(self):
        """A rejected write surfaces as DestinationWriteError."""
        sink = RecordSink.open(FailingStream(fail_after=1))
        with pytest.raises(DestinationWriteError, match="No space left"):
            sink.push(make_record(1))

    def test_open_failure(self):
        """A stream failing on the opening bracket fails open."""
        with pytest.raises(DestinationWriteError):
            RecordSink.open(FailingStream(fail_after=0))

    def test_closed_stream(self):
        """Writing to a closed stream is a write failure, not a ValueError."""
        stream = io.StringIO()
        sink = RecordSink.open(stream)
        stream.close()
        with pytest.raises(DestinationWriteError):
            sink.push(make_record(1))

    def test_context_manager_closes_on_error(self):
        """Leaving the block on an exception still closes the array."""
        stream = io.StringIO()
        with pytest.raises(RuntimeError):
            with RecordSink.open(stream) as sink:
                sink.push(make_record(1))
                raise RuntimeError("build interrupted")
        assert json.loads(stream.getvalue()) == [make_record(1).model_dump()]

    def test_context_manager_keeps_original_error(self):
        """A failing close does not mask the error that ended the block."""
        stream = FailingStream(fail_after=2)
        with pytest.raises(RuntimeError):
            with RecordSink.open(stream) as sink:
                sink.push(make_record(1))
                raise RuntimeError("boom")


class TestFileDestination:
    """Sinks opened on a path."""

    def test_creates_parents_and_closes(self, db_path, read_db):
        """Parent directories are created and the file is complete on close."""
        with RecordSink.open(db_path) as sink:
            sink.push(make_record(1))
        assert read_db(db_path) == [make_record(1).model_dump()]

    def test_truncates_previous_run(self, db_path, read_db):
        """Each run writes a fresh database."""
        db_path.parent.mkdir(parents=True)
        db_path.write_text('[{"old": true}]')
        RecordSink.open(db_path).close()
        assert read_db(db_path) == []

    def test_pushed_records_reach_disk(self, db_path):
        """Each push is on disk before the sink is closed."""
        sink = RecordSink.open(db_path)
        assert db_path.read_text() == "[\n"
        sink.push(make_record(1))
        assert db_path.read_text() == "[\n" + make_record(1).to_json()
        sink.close()

    def test_hard_kill_leaves_array_prefix(self, db_path):
        """A process killed without cleanup leaves every pushed entry behind."""
        script = (
            "import os, sys\n"
            "from compdb_capture.models import CompileRecord\n"
            "from compdb_capture.sink import RecordSink\n"
            "sink = RecordSink.open(sys.argv[1])\n"
            "for n in range(3):\n"
            "    sink.push(CompileRecord(directory='/work', command=f'/usr/bin/gcc -c -o f{n}.o f{n}.c', file=f'f{n}.c'))\n"
            "os._exit(1)\n"
        )
        env = dict(os.environ, PYTHONPATH=str(Path(compdb_capture.__file__).parents[1]))
        completed = subprocess.run([sys.executable, "-c", script, str(db_path)], env=env)
        assert completed.returncode == 1

        expected = ",\n".join(make_record(n).to_json() for n in range(3))
        assert db_path.read_text() == "[\n" + expected

    def test_open_closes_file_when_first_write_fails(self, db_path, monkeypatch):
        """A file opened by the sink is not leaked when the opening bracket fails."""
        opened = []

        def fake_open(*args, **kwargs):
            stream = FailingStream(fail_after=0)
            opened.append(stream)
            return stream

        monkeypatch.setattr("compdb_capture.sink.open", fake_open, raising=False)
        with pytest.raises(DestinationWriteError):
            RecordSink.open(db_path)
        assert len(opened) == 1
        assert opened[0].closed

    def test_unwritable_path(self, tmp_path):
        """A directory in place of the file fails with a clear error."""
        with pytest.raises(DestinationWriteError, match="Cannot open"):
            RecordSink.open(tmp_path)
