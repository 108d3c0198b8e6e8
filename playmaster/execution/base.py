"""Abstract execution target for shell commands."""

import shlex
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Self


@dataclass(frozen=True, kw_only=True)
class CommandOutput:
    """Outcome of a command run to completion.

    A non-zero exit code is not an error by itself, callers decide.
    """

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class LineStream(ABC, Iterator[str]):
    """Lazy sequence of output lines of a running command.

    Iterating blocks until the next line is available and stops at end of
    output. Closing the stream early abandons the command's output.
    """

    @property
    @abstractmethod
    def exit_code(self) -> int | None:
        """Exit code once the output has ended, None before or if unknown."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying pipe or channel."""

    def __iter__(self) -> Self:
        return self

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class ExecutionSession(ABC):
    """Place where commands run, the local machine or a remote host."""

    is_remote: bool = False

    @abstractmethod
    def execute(
        self,
        cmd: str,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandOutput:
        """Run a shell command and wait for it to finish.

        Args:
            cmd: Shell command line
            cwd: Working directory on the execution target
            env: Extra environment variables

        Returns:
            Captured output and exit code

        """

    @abstractmethod
    def stream(
        self,
        cmd: str,
        *,
        name: str,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> LineStream:
        """Start a shell command and return its output line by line.

        Args:
            cmd: Shell command line
            name: Identifies the command in the process registry and logs
            cwd: Working directory on the execution target
            env: Extra environment variables

        Returns:
            Stream of output lines, stdout and stderr merged

        """


def with_env_source(root_dir: str, cmd: str) -> str:
    """Prefix a command so it runs with PlayMaster's ``.bashrc`` loaded."""
    bashrc = f"{root_dir.rstrip('/')}/.bashrc"
    return f"source {shlex.quote(bashrc)} && {cmd}"
