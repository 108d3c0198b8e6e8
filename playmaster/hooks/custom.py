"""User-declared command hooks."""

import logging
import os
import shlex
import subprocess
import threading
from collections.abc import Sequence
from dataclasses import dataclass

from playmaster.hooks.base import Hook, HookContext, HookError, HookType
from playmaster.logs import write_command_log
from playmaster.models.config import HookConfig
from playmaster.processes import ProcessRegistry

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class Custom(Hook):
    """Runs a configured command on the local machine."""

    config: HookConfig

    @property
    def name(self) -> str:
        return self.config.name

    def get_type(self) -> HookType:
        return self.config.hook_type

    def continue_on_error(self) -> bool:
        return self.config.continue_on_error

    def argv(self) -> Sequence[str]:
        """Program and arguments; a command without args is split like a shell."""
        if self.config.args is None:
            return shlex.split(self.config.command)
        return [self.config.command, *self.config.args]

    def environment(self) -> dict[str, str] | None:
        if not self.config.env:
            return None
        return {**os.environ, **self.config.env}

    def run(self, ctx: HookContext) -> None:
        log.info("Executing custom hook: %s", self.name)
        if self.config.is_async:
            self.run_async(ctx.registry)
        else:
            self.run_sync()

    def run_sync(self) -> None:
        """Run the command to completion.

        Raises:
            HookError: If the command cannot start or exits with non-zero status

        """
        try:
            completed = subprocess.run(
                self.argv(), env=self.environment(), capture_output=True, check=False
            )
        except OSError as e:
            raise HookError(f"Failed to start custom hook {self.name}: {e}") from e

        if completed.stdout:
            log.debug("[%s] %s", self.name, completed.stdout.decode(errors="replace"))
        if completed.returncode != 0:
            stderr = completed.stderr.decode(errors="replace").strip()
            raise HookError(
                f"Custom hook {self.name} exited with status "
                f"{completed.returncode}: {stderr}"
            )

    def run_async(self, registry: ProcessRegistry) -> None:
        """Spawn the command and return without waiting for it.

        The process stays in the registry, so it is killed at shutdown if it
        is still running; its output goes to the command log files.
        """
        try:
            process = subprocess.Popen(
                self.argv(),
                env=self.environment(),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise HookError(f"Failed to start custom hook async: {self.name}") from e

        registry.track(self.name, process)
        threading.Thread(
            target=_wait_and_log,
            args=(self.name, process, registry),
            name=f"hook-{self.name}",
            daemon=True,
        ).start()


def _wait_and_log(
    name: str, process: subprocess.Popen[bytes], registry: ProcessRegistry
) -> None:
    try:
        stdout, stderr = process.communicate()
    except (OSError, ValueError) as e:
        log.error("[%s] Failed to wait for custom hook async: %s", name, e)
        return
    finally:
        registry.untrack(process)

    if process.returncode != 0:
        log.error(
            "[%s] Custom hook async exited with non-zero status: %s",
            name,
            process.returncode,
        )
    if stdout:
        write_command_log(name, "stdout", stdout.decode(errors="replace"))
    if stderr:
        write_command_log(name, "stderr", stderr.decode(errors="replace"))
