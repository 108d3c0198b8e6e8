"""Bookkeeping of spawned work so shutdown can reach all of it."""

import logging
import os
import shlex
import signal
import subprocess
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, IO

from playmaster.logs import write_command_log

if TYPE_CHECKING:
    from playmaster.execution.base import ExecutionSession

log = logging.getLogger(__name__)

KILL_WAIT_TIMEOUT = 5.0


@dataclass(frozen=True, kw_only=True)
class TrackedProcess:
    """Local child process."""

    name: str
    process: subprocess.Popen[bytes]


@dataclass(frozen=True, kw_only=True)
class TrackedRemoteCommand:
    """Fire-and-forget command running on a remote host."""

    command_pattern: str
    session: "ExecutionSession"


class ProcessRegistry:
    """Tracks spawned processes and remote commands until they end."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._local: list[TrackedProcess] = []
        self._remote: list[TrackedRemoteCommand] = []

    def track(self, name: str, process: subprocess.Popen[bytes]) -> None:
        with self._lock:
            self._local.append(TrackedProcess(name=name, process=process))
        log.debug("Tracking process %s (pid=%s)", name, process.pid)

    def track_remote(self, command_pattern: str, session: "ExecutionSession") -> None:
        with self._lock:
            self._remote.append(
                TrackedRemoteCommand(command_pattern=command_pattern, session=session)
            )
        log.debug("Tracking remote command matching %r", command_pattern)

    def untrack(self, process: subprocess.Popen[bytes]) -> None:
        """Forget a local process that exited on its own."""
        with self._lock:
            self._local = [t for t in self._local if t.process is not process]

    def untrack_remote(self, command_pattern: str) -> None:
        """Forget a remote command that finished on its own."""
        with self._lock:
            self._remote = [
                t for t in self._remote if t.command_pattern != command_pattern
            ]

    @property
    def tracked(self) -> Sequence[TrackedProcess | TrackedRemoteCommand]:
        with self._lock:
            return (*self._local, *self._remote)

    def terminate_all(self) -> None:
        """Kill everything still tracked.

        Safe to call repeatedly and from any thread: the registry is drained
        first, so each entry is terminated at most once.
        """
        with self._lock:
            local, self._local = self._local, []
            remote, self._remote = self._remote, []

        if not local and not remote:
            log.debug("No tracked processes to terminate")
            return

        for tracked in local:
            self._terminate_local(tracked)
        for tracked_remote in remote:
            self._terminate_remote(tracked_remote)

    def _terminate_local(self, tracked: TrackedProcess) -> None:
        process = tracked.process
        if process.poll() is None:
            log.info("Terminating %s (pid=%s)", tracked.name, process.pid)
            kill_process_group(process)
            try:
                process.wait(timeout=KILL_WAIT_TIMEOUT)
            except subprocess.TimeoutExpired:
                log.error(
                    "Process %s (pid=%s) did not exit after kill",
                    tracked.name,
                    process.pid,
                )
                return

        _log_remaining_output(tracked.name, "stdout", process.stdout)
        _log_remaining_output(tracked.name, "stderr", process.stderr)

    def _terminate_remote(self, tracked: TrackedRemoteCommand) -> None:
        log.info("Terminating remote command matching %r", tracked.command_pattern)
        try:
            tracked.session.execute(
                f"pkill -f {shlex.quote(self_excluding(tracked.command_pattern))} "
                "|| true"
            )
        except Exception as e:
            log.error(
                "Failed to terminate remote command %r: %s",
                tracked.command_pattern,
                e,
            )


def self_excluding(pattern: str) -> str:
    """Turn a ``pkill -f`` pattern into one that does not match itself.

    The kill runs through a shell whose command line contains the pattern,
    so ``flutter drive`` becomes ``[f]lutter drive``, which still matches
    the target but not the literal text in the shell's arguments.
    """
    if not pattern or not pattern[0].isalnum():
        return pattern
    return f"[{pattern[0]}]{pattern[1:]}"


def kill_process_group(process: subprocess.Popen[bytes]) -> None:
    """Kill a process, and its whole group when it leads one."""
    try:
        if os.getpgid(process.pid) == process.pid:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


def _log_remaining_output(
    name: str, stream_name: str, stream: IO[bytes] | None
) -> None:
    if stream is None or stream.closed:
        return
    try:
        data = stream.read()
    except (OSError, ValueError) as e:
        log.debug("Could not read remaining %s of %s: %s", stream_name, name, e)
        return
    if data:
        write_command_log(name, stream_name, data.decode(errors="replace"))
