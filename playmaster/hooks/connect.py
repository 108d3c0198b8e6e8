"""Choosing the execution target and verifying remote access."""

import getpass
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field

from playmaster.execution import RemoteSession
from playmaster.hooks.base import Hook, HookContext, HookError, HookType
from playmaster.state import RemoteInfo

log = logging.getLogger(__name__)

PASSWORD_ENV_VAR = "PLAYMASTER_REMOTE_PASSWORD"


@dataclass(frozen=True, kw_only=True)
class Connect(Hook):
    """Decides between a local and a remote run.

    For a remote run the connection details are taken from the configuration
    and completed interactively, then an authenticated SSH session is opened
    once to make sure the host is usable before anything else runs.
    """

    ask: Callable[[str], str] = field(default=input, repr=False)
    ask_secret: Callable[[str], str] = field(default=getpass.getpass, repr=False)

    def get_type(self) -> HookType:
        return HookType.CONNECT

    def run(self, ctx: HookContext) -> None:
        if not self.wants_remote(ctx):
            log.info("Proceeding with local execution")
            return

        remote = self.remote_info(ctx)
        log.info("Connecting to %s...", remote.address)
        session = RemoteSession(remote=remote, registry=ctx.registry)
        session.connect().close()
        log.info("✅ Connected to %s", remote.address)

        ctx.state.set_remote(remote)

    def wants_remote(self, ctx: HookContext) -> bool:
        if ctx.options.mode is not None:
            return ctx.options.mode == "remote"
        if ctx.options.yes:
            return False

        answer = self.ask("Do you want to connect to a remote host? [y/N] ")
        return answer.strip().lower() in {"y", "yes"}

    def remote_info(self, ctx: HookContext) -> RemoteInfo:
        """Gather connection details from config, environment and prompts.

        Raises:
            HookError: If a detail is missing and prompting is disabled

        """
        remote_config = ctx.config.remote

        host = remote_config.host or self._prompt(ctx, "Remote host: ", "host")
        user = remote_config.user or self._prompt(ctx, "Remote user: ", "user")

        password = os.environ.get(PASSWORD_ENV_VAR)
        if not password and remote_config.password is not None:
            password = remote_config.password.get_secret_value()
        if not password:
            if ctx.options.yes:
                raise HookError(
                    f"No remote password configured, set {PASSWORD_ENV_VAR}"
                )
            password = self.ask_secret(f"Password for {user}@{host}: ")

        return RemoteInfo(
            user=user, host=host, port=remote_config.port, password=password
        )

    def _prompt(self, ctx: HookContext, message: str, what: str) -> str:
        if ctx.options.yes:
            raise HookError(f"No remote {what} configured")
        if not (value := self.ask(message).strip()):
            raise HookError(f"Remote {what} is required")
        return value
