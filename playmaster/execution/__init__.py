"""Execution targets for shell commands."""

from playmaster.execution.base import (
    CommandOutput,
    ExecutionSession,
    LineStream,
    with_env_source,
)
from playmaster.execution.local import LocalSession, display
from playmaster.execution.remote import RemoteSession
from playmaster.processes import ProcessRegistry
from playmaster.state import SharedState


def session_for(state: SharedState, registry: ProcessRegistry) -> ExecutionSession:
    """Return the session for the current execution target."""
    if (remote := state.remote) is not None:
        return RemoteSession(remote=remote, registry=registry)
    return LocalSession(registry=registry)


__all__ = [
    "CommandOutput",
    "ExecutionSession",
    "LineStream",
    "LocalSession",
    "display",
    "RemoteSession",
    "session_for",
    "with_env_source",
]
