"""Command execution on the local machine."""

import logging
import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import IO

from playmaster.execution.base import CommandOutput, ExecutionSession, LineStream
from playmaster.processes import ProcessRegistry, kill_process_group

log = logging.getLogger(__name__)

SHELL = "bash"

DEFAULT_DISPLAY = ":0"


def display() -> str:
    """X display the application under test is shown on."""
    return os.environ.get("DISPLAY") or DEFAULT_DISPLAY


def _environment(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if not env:
        return None
    return {**os.environ, **env}


@dataclass(frozen=True, kw_only=True)
class LocalSession(ExecutionSession):
    """Runs commands through the local shell."""

    registry: ProcessRegistry = field(repr=False)

    def execute(
        self,
        cmd: str,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandOutput:
        """Run a command locally and collect both output streams."""
        log.debug("Running local command: %s", cmd)
        completed = subprocess.run(
            [SHELL, "-c", cmd],
            cwd=cwd,
            env=_environment(env),
            capture_output=True,
            check=False,
        )
        return CommandOutput(
            stdout=completed.stdout.decode(errors="replace").strip(),
            stderr=completed.stderr.decode(errors="replace").strip(),
            exit_code=completed.returncode,
        )

    def stream(
        self,
        cmd: str,
        *,
        name: str,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "LocalLineStream":
        """Spawn a command locally, tracked in the registry until it exits."""
        log.info("Spawning local command: %s", cmd)
        process = subprocess.Popen(
            [SHELL, "-c", cmd],
            cwd=cwd,
            env=_environment(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
        self.registry.track(name, process)
        return LocalLineStream(process=process, registry=self.registry)


class LocalLineStream(LineStream):
    """Line reader over a child process's stdout pipe."""

    def __init__(
        self, *, process: subprocess.Popen[bytes], registry: ProcessRegistry
    ) -> None:
        if process.stdout is None:
            raise ValueError("Process stdout must be piped")
        self._process = process
        self._stdout: IO[bytes] = process.stdout
        self._registry = registry
        self._exit_code: int | None = None

    @property
    def process(self) -> subprocess.Popen[bytes]:
        return self._process

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def __next__(self) -> str:
        try:
            raw = self._stdout.readline()
        except ValueError:
            # Pipe closed by close() or by the registry during shutdown.
            raw = b""

        if not raw:
            self._finish()
            raise StopIteration

        return raw.decode(errors="replace").rstrip("\r\n")

    def close(self) -> None:
        if self._exit_code is None:
            kill_process_group(self._process)
        self._finish()

    def _finish(self) -> None:
        if self._exit_code is not None:
            return
        self._exit_code = self._process.wait()
        self._registry.untrack(self._process)
        if not self._stdout.closed:
            self._stdout.close()
        log.debug("Local command exited with status %s", self._exit_code)
