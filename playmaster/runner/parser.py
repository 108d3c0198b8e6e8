"""State machine turning the test driver's console output into events.

The driver prints progress lines such as ``00:05 +1 -0: Feature - Case A``
where the counters are the running totals of passed and failed tests. A
counter moving forward settles the test that was running; the name starts
the next one. Everything else printed while a test runs is kept in case the
test fails.
"""

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

from playmaster.runner.events import Failed, Passed, ProgressNoise, Started, TestEvent

log = logging.getLogger(__name__)

NOISE_MARKERS = (
    "Some tests failed",
    "All tests passed",
    "VMServiceFlutterDriver",
)

ERROR_TAG = "[E]"

LOG_PREFIX = "flutter:"

PROGRESS_RE = re.compile(
    r"^(?P<elapsed>\S+)\s+(?P<passed>[+-]?\d+)\s+(?P<failed>[+-]?\d+)"
    r"(?:\s+~\d+)?:\s*(?P<name>.*)$"
)

CONTINUE_REQUEST_RE = re.compile(
    r"Waiting for DBus method call \S+\.Continue\((?P<input>[^)]*)\)"
)

type InputRequestHandler = Callable[[str, str | None], None]


class TestsFailedError(Exception):
    """Raised when the test run reported failed tests."""

    __test__ = False

    def __init__(self, failed: int) -> None:
        self.failed = failed
        super().__init__("Some tests failed")


@dataclass(frozen=True, kw_only=True)
class ProgressLine:
    """Parsed ``<elapsed> +P -F: <name>`` line."""

    elapsed: str
    passed: int
    failed: int
    name: str


def parse_progress(line: str) -> ProgressLine | None:
    """Parse a progress line, None when the line is not one."""
    if (match := PROGRESS_RE.match(line)) is None:
        return None
    return ProgressLine(
        elapsed=match["elapsed"],
        passed=abs(int(match["passed"])),
        failed=abs(int(match["failed"])),
        name=match["name"].strip(),
    )


def identify_continue_request(line: str) -> str | None:
    """Return the input name a test waits for, None for other lines."""
    if (match := CONTINUE_REQUEST_RE.search(line)) is None:
        return None
    return match["input"].strip()


@dataclass(frozen=True, kw_only=True)
class ParseSummary:
    """Totals once the output has ended."""

    passed: int
    failed: int
    start_time: datetime
    end_time: datetime
    full_log: str

    @property
    def total(self) -> int:
        return self.passed + self.failed

    def raise_for_failures(self) -> None:
        """Raise TestsFailedError if any test failed."""
        if self.failed > 0:
            raise TestsFailedError(self.failed)


@dataclass(kw_only=True)
class OutputStreamParser:
    """Consumes output lines one at a time and yields test events.

    Independent of where the lines come from. ``on_input_request`` is called
    with the requested input name and the running test's name whenever the
    driver blocks waiting for a continuation.
    """

    on_input_request: InputRequestHandler | None = None

    passed: int = 0
    failed: int = 0
    current_test: str | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    _full_log: list[str] = field(default_factory=list)
    _test_output: list[str] = field(default_factory=list)
    _seen: set[tuple[int, int, str]] = field(default_factory=set)

    def feed(self, raw_line: str) -> list[TestEvent]:
        """Process one line and return the events it produced."""
        line = raw_line.strip()
        self._full_log.append(line)

        if not line:
            return []
        if any(marker in line for marker in NOISE_MARKERS):
            return [ProgressNoise(line=line)]

        if (input_name := identify_continue_request(line)) is not None:
            if self.on_input_request is not None:
                self.on_input_request(input_name, self.current_test)
            return []

        if line.startswith(LOG_PREFIX):
            line = line.removeprefix(LOG_PREFIX).strip()

        if ERROR_TAG in line:
            log.debug("Ignoring driver error line: %s", line)
            return []

        if (progress := parse_progress(line)) is not None:
            return self._on_progress(progress, line)

        if self.current_test is not None:
            self._test_output.append(line)
        else:
            log.debug("Unrecognised output line: %s", line)
        return []

    def _on_progress(self, progress: ProgressLine, line: str) -> list[TestEvent]:
        key = (progress.passed, progress.failed, progress.name)
        if key in self._seen:
            return [ProgressNoise(line=line)]
        self._seen.add(key)

        if self.current_test is None:
            # Pseudo tests such as (setUpAll) count in the driver's totals
            # without producing events.
            self.passed = max(self.passed, progress.passed)
            self.failed = max(self.failed, progress.failed)

        events: list[TestEvent] = []
        finished: str | None = None

        if progress.failed > self.failed and self.current_test is not None:
            self.failed += 1
            finished = self.current_test
            events.append(
                Failed(name=finished, output="\n".join(self._test_output))
            )
        elif progress.passed > self.passed and self.current_test is not None:
            self.passed += 1
            finished = self.current_test
            events.append(Passed(name=finished))

        if finished is not None:
            self.current_test = None
            self._test_output.clear()
            if progress.name == finished:
                return events

        if progress.name.startswith("("):
            # setUpAll, tearDownAll and other framework pseudo tests
            self.current_test = None
            events.append(ProgressNoise(line=line))
            return events

        self.current_test = progress.name
        self._test_output.clear()
        events.append(Started(name=progress.name))
        return events

    def parse(self, lines: Iterable[str]) -> Iterator[TestEvent]:
        """Feed every line and yield events in output order."""
        for line in lines:
            yield from self.feed(line)

    def finish(self) -> ParseSummary:
        """Summarise the run once the output has ended."""
        return ParseSummary(
            passed=self.passed,
            failed=self.failed,
            start_time=self.start_time,
            end_time=datetime.now(UTC),
            full_log="".join(f"{line}\n" for line in self._full_log),
        )
