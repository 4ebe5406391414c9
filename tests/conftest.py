"""Pytest configuration and fixtures for compdb-capture tests."""

import json
import logging
import sys
from pathlib import Path

import pytest

from compdb_capture.classifier import LineClassifier

BUILD_LOG = """\
make[1]: Entering directory '/src'
/usr/bin/gcc -c -o foo.o foo.c
echo "building gcc -c -o nope.o nope.c"
/usr/bin/g++ -O2 -c -o bar.o bar.cpp -I/usr/include
/usr/bin/gcc -o app foo.o bar.o
[ 50%] Building CXX object CMakeFiles/app.dir/baz.cc.o
make[1]: Leaving directory '/src'
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep user overrides out of the tests."""
    monkeypatch.delenv("COMPDB_CAPTURE_OUTPUT", raising=False)
    monkeypatch.delenv("COMPDB_CAPTURE_EXTRACTION", raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers bound to streams swapped out by the test runner."""
    yield
    logger = logging.getLogger("compdb_capture")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def classifier() -> LineClassifier:
    """Default classifier with a fixed working directory."""
    return LineClassifier(cwd=lambda: "/work")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Destination for a compilation database."""
    return tmp_path / "out" / "compile_commands.json"


@pytest.fixture
def build_log(tmp_path: Path) -> Path:
    """A saved build log with two compile steps."""
    log = tmp_path / "build.log"
    log.write_text(BUILD_LOG)
    return log


@pytest.fixture
def fake_build(tmp_path: Path) -> list[str]:
    """A build command that replays BUILD_LOG on stdout and chatters on stderr."""
    script = tmp_path / "fake_build.py"
    script.write_text(
        "import sys\n"
        f"sys.stdout.write({BUILD_LOG!r})\n"
        "sys.stderr.write('warning: something odd\\n' * 200)\n"
        "sys.exit(int(sys.argv[1]) if len(sys.argv) > 1 else 0)\n"
    )
    return [sys.executable, str(script)]


@pytest.fixture
def read_db():
    """Parse a written compilation database."""

    def read(path: Path) -> list[dict]:
        return json.loads(path.read_text(encoding="utf-8"))

    return read
