"""Classify lines of build output as compiler invocations.

Detection is a best-effort heuristic, not a shell parser. A line is taken
to be a single-file compile step when it:
- carries the ` -c ` and ` -o ` flags as space-bounded tokens
- mentions a source file extension anywhere (substring match)
- invokes a known compiler, through a path or in command position

Lines that fail any check are rejected with one reason per failed check.
Known weak spots: extension checks are substring based (`.c` matches
`foo.config`), and the noise markers are generic enough to hit real
source trees (a directory literally named `target/`).
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .models import CompileRecord

DEFAULT_COMPILERS = ("cc", "c++", "gcc", "g++", "clang", "clang++")
DEFAULT_SOURCE_EXTENSIONS = (".c", ".cpp", ".cc", ".cxx")
DEFAULT_NOISE_MARKERS = ("CMakeFiles", ".make", "target")

# Wrappers that run the real compiler as their first argument
LAUNCHERS = ("ccache", "sccache", "distcc")

COMPILE_FLAG = " -c "
OUTPUT_FLAG = " -o "


class ReasonCode(str, Enum):
    """Why a line was not accepted as a compile step."""

    MISSING_COMPILE_FLAG = "MissingCompileFlag"
    MISSING_OUTPUT_FLAG = "MissingOutputFlag"
    MISSING_SOURCE_EXTENSION = "MissingSourceExtension"
    LOOKS_LIKE_BUILD_SYSTEM_NOISE = "LooksLikeBuildSystemNoise"
    NOT_A_COMPILER_INVOCATION = "NotACompilerInvocation"


class ExtractionPolicy(str, Enum):
    """How the source file is picked out of an accepted line."""

    PATTERN = "pattern"
    POSITIONAL = "positional"


@dataclass(frozen=True)
class Accepted:
    """The line is a compile step."""

    record: CompileRecord

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    """The line is not a compile step."""

    reasons: frozenset[ReasonCode] = field(default_factory=frozenset)

    @property
    def accepted(self) -> bool:
        return False


Outcome = Accepted | Rejected


def build_compiler_pattern(compilers: tuple[str, ...] | list[str]) -> re.Pattern[str]:
    """Build the regex matching a compiler invocation.

    Two shapes count:
    - a path ending in a compiler, absolute or relative (`/usr/bin/gcc`,
      `../prebuilts/bin/clang`), starting any token not led by `-`
    - a bare compiler in command position: start of line, after a shell
      separator, or after a launcher such as ccache

    The compiler must be followed by whitespace and any path prefix must
    end in `/`. A name buried in another token (`mygcc`, `/usr/bin/nvcc`,
    `"gcc`, `CC=gcc`) never matches.
    """
    names = sorted(set(compilers), key=len, reverse=True)
    alternation = "|".join(re.escape(name) for name in names)
    launchers = "|".join(re.escape(name) for name in LAUNCHERS)
    path_prefix = r"(?<!\S)(?!-)(?:[\w.+~-]*/)+"
    command_position = rf"(?:^\s*|[;&|(]\s*|(?<!\S)(?:\S*/)?(?:{launchers})\s+)"
    return re.compile(rf"(?:{path_prefix}|{command_position})(?:{alternation})\s")


def build_source_pattern(extensions: tuple[str, ...] | list[str]) -> re.Pattern[str]:
    """Build the regex matching `<non-space-run><ext>` followed by whitespace or EOL."""
    suffixes = sorted({ext.lstrip(".") for ext in extensions}, key=len, reverse=True)
    alternation = "|".join(re.escape(suffix) for suffix in suffixes)
    return re.compile(rf"(\S+\.(?:{alternation}))(?=\s|$)")


class LineClassifier:
    """Decide whether a line of build output is a compiler invocation.

    Instances hold only compiled patterns, so `classify` is a pure function
    of its input apart from the working-directory query.
    """

    def __init__(
        self,
        compilers: tuple[str, ...] | list[str] = DEFAULT_COMPILERS,
        source_extensions: tuple[str, ...] | list[str] = DEFAULT_SOURCE_EXTENSIONS,
        noise_markers: tuple[str, ...] | list[str] = DEFAULT_NOISE_MARKERS,
        extraction: ExtractionPolicy = ExtractionPolicy.PATTERN,
        cwd: Callable[[], str] = os.getcwd,
    ):
        if not compilers:
            raise ValueError("At least one compiler name is required")
        if not source_extensions:
            raise ValueError("At least one source extension is required")

        self.source_extensions = tuple(source_extensions)
        self.noise_markers = tuple(noise_markers)
        self.extraction = ExtractionPolicy(extraction)
        self._cwd = cwd
        self._compiler_re = build_compiler_pattern(compilers)
        self._source_re = build_source_pattern(source_extensions)

    def rejection_reasons(self, line: str) -> frozenset[ReasonCode]:
        """Return the failed conditions for a line (empty if it is a compile step)."""
        reasons = set()
        if COMPILE_FLAG not in line:
            reasons.add(ReasonCode.MISSING_COMPILE_FLAG)
        if OUTPUT_FLAG not in line:
            reasons.add(ReasonCode.MISSING_OUTPUT_FLAG)
        if not any(ext in line for ext in self.source_extensions):
            reasons.add(ReasonCode.MISSING_SOURCE_EXTENSION)
        if not self._compiler_re.search(line):
            reasons.add(ReasonCode.NOT_A_COMPILER_INVOCATION)

        # Noise only annotates lines that already failed a real check
        if reasons and any(marker in line for marker in self.noise_markers):
            reasons.add(ReasonCode.LOOKS_LIKE_BUILD_SYSTEM_NOISE)

        return frozenset(reasons)

    def extract_source(self, line: str) -> str:
        """Pick the source file out of a compile line ("" if not found)."""
        if self.extraction is ExtractionPolicy.POSITIONAL:
            tokens = line.split()
            return tokens[-1] if tokens else ""

        match = self._source_re.search(line)
        return match.group(1) if match else ""

    def classify(self, line: str, directory: str | None = None) -> Outcome:
        """Classify one line.

        Args:
            line: Line of build output, without its trailing newline
            directory: Working directory to record; queried when omitted

        Returns:
            Accepted with the synthesized record, or Rejected with reasons
        """
        reasons = self.rejection_reasons(line)
        if reasons:
            return Rejected(reasons=reasons)

        record = CompileRecord(
            directory=directory if directory is not None else self._cwd(),
            command=line,
            file=self.extract_source(line),
        )
        return Accepted(record=record)


def classify(line: str, directory: str | None = None) -> Outcome:
    """Classify a line with the default compilers, extensions and policy."""
    return _DEFAULT_CLASSIFIER.classify(line, directory)


_DEFAULT_CLASSIFIER = LineClassifier()
