"""Lifecycle phases hooks are bound to."""

from collections.abc import Sequence
from enum import StrEnum


class HookType(StrEnum):
    """Phases of a run, in execution order.

    Connect: establishing a connection to a remote host if needed.
    VerifySystem: verifying system prerequisites and dependencies.
    PrepareSystem: preparing the system before running tests.
    Finished: reporting once tests have run.
    """

    CONNECT = "connect"
    VERIFY_SYSTEM = "verify_system"
    PREPARE_SYSTEM = "prepare_system"
    FINISHED = "finished"

    @classmethod
    def pre_hooks(cls) -> Sequence["HookType"]:
        """Phases that run before the test step."""
        return (cls.CONNECT, cls.VERIFY_SYSTEM, cls.PREPARE_SYSTEM)

    @classmethod
    def post_hooks(cls) -> Sequence["HookType"]:
        """Phases that run after the test step."""
        return (cls.FINISHED,)
