"""Discovering the execution target and preparing PlayMaster's directory."""

import logging
import shlex
from dataclasses import dataclass

from playmaster.execution import ExecutionSession, display
from playmaster.hooks.base import Hook, HookContext, HookError, HookType
from playmaster.state import OsInfo

log = logging.getLogger(__name__)

OSTREE_MARKER = "/run/ostree-booted"
ROOT_DIR_NAME = ".playmaster"


@dataclass(frozen=True, kw_only=True)
class SetupState(Hook):
    """Records OS traits and the root directory of the execution target."""

    def get_type(self) -> HookType:
        return HookType.CONNECT

    def run(self, ctx: HookContext) -> None:
        log.info("Setting up OS-specific state information...")
        session = ctx.session()

        is_ostree = session.execute(f"test -e {OSTREE_MARKER}").ok
        ctx.state.set_os_info(OsInfo(is_ostree=is_ostree))
        log.debug("ostree based system: %s", is_ostree)

        root_dir = f"{home_dir(session).rstrip('/')}/{ROOT_DIR_NAME}"
        ctx.state.set_root_dir(root_dir)

        bashrc = shlex.quote(f"{root_dir}/.bashrc")
        run_checked(session, f"mkdir -p {shlex.quote(root_dir)} && touch {bashrc}")
        add_line_once(session, bashrc, f"export DISPLAY={display()}")

        log.info("Root directory: %s", root_dir)


def home_dir(session: ExecutionSession) -> str:
    """Home directory of the user commands run as."""
    output = run_checked(session, 'printf %s "$HOME"')
    if not output:
        raise HookError("Could not determine home directory")
    return output


def add_line_once(session: ExecutionSession, quoted_path: str, line: str) -> None:
    """Append a line to a file unless it is already there."""
    quoted_line = shlex.quote(line)
    run_checked(
        session,
        f"grep -qxF {quoted_line} {quoted_path} || "
        f"echo {quoted_line} >> {quoted_path}",
    )


def run_checked(session: ExecutionSession, cmd: str) -> str:
    output = session.execute(cmd)
    if not output.ok:
        raise HookError(
            f"Command failed with status {output.exit_code}: "
            f"{output.stderr or output.stdout}"
        )
    return output.stdout
