"""State shared between the worker, hooks and the test runner.

Every accessor takes the lock for the shortest possible time and never
performs I/O while holding it.
"""

import dataclasses
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class ReadWriteLock:
    """Lock allowing concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the lock shared."""
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the lock exclusively."""
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class RunningFlag:
    """Process-wide cooperative cancellation flag.

    Starts out running; only the signal listener stops it.
    """

    def __init__(self) -> None:
        self._stopped = threading.Event()

    def is_running(self) -> bool:
        return not self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()


@dataclass(frozen=True, kw_only=True)
class RemoteInfo:
    """Connection details of an authenticated remote host."""

    user: str
    host: str
    port: int = 22
    password: str = field(default="", repr=False)

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


@dataclass(frozen=True, kw_only=True)
class OsInfo:
    """Traits of the execution target's operating system."""

    is_ostree: bool = False


@dataclass(kw_only=True)
class Results:
    """Accounting of a test run, handed to Finished hooks."""

    passed: int = 0
    failed: int = 0
    total: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    full_log: str = ""
    error: list[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or bool(self.error)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON payloads."""
        return {
            "passed": self.passed,
            "failed": self.failed,
            "total": self.total,
            "start_time": self.start_time.isoformat() if self.start_time else "",
            "end_time": self.end_time.isoformat() if self.end_time else "",
            "full_log": self.full_log,
            "error": list(self.error),
        }


class SharedState:
    """Run state guarded by a reader/writer lock."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._remote: RemoteInfo | None = None
        self._os_info = OsInfo()
        self._root_dir = ""
        self._results = Results()

    @property
    def remote(self) -> RemoteInfo | None:
        with self._lock.read():
            return self._remote

    def set_remote(self, remote: RemoteInfo) -> None:
        """Record the remote host; it can only be set once per run."""
        with self._lock.write():
            if self._remote is not None:
                raise RuntimeError("Remote connection is already set")
            self._remote = remote

    @property
    def os_info(self) -> OsInfo:
        with self._lock.read():
            return self._os_info

    def set_os_info(self, os_info: OsInfo) -> None:
        with self._lock.write():
            self._os_info = os_info

    @property
    def root_dir(self) -> str:
        with self._lock.read():
            return self._root_dir

    def set_root_dir(self, root_dir: str) -> None:
        with self._lock.write():
            self._root_dir = root_dir

    def results(self) -> Results:
        """Return a snapshot of the results."""
        with self._lock.read():
            return dataclasses.replace(self._results, error=list(self._results.error))

    def increment_passed(self) -> None:
        with self._lock.write():
            self._results.passed += 1

    def increment_failed(self) -> None:
        with self._lock.write():
            self._results.failed += 1

    def add_error(self, message: str) -> None:
        with self._lock.write():
            self._results.error.append(message)

    def finalize_results(
        self,
        *,
        total: int,
        start_time: datetime,
        end_time: datetime,
        full_log: str,
    ) -> None:
        """Store the totals computed once the test output has ended."""
        with self._lock.write():
            self._results.total = total
            self._results.start_time = start_time
            self._results.end_time = end_time
            self._results.full_log = full_log

    @property
    def errors(self) -> Sequence[str]:
        with self._lock.read():
            return tuple(self._results.error)
