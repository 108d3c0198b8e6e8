"""Hook interface and the context every hook runs with."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field

from playmaster.execution import ExecutionSession, session_for
from playmaster.models.config import Config
from playmaster.models.feature import FeatureTest
from playmaster.models.options import RunOptions
from playmaster.models.phase import HookType
from playmaster.models.variables import Variables
from playmaster.processes import ProcessRegistry
from playmaster.state import RunningFlag, SharedState


class HookError(Exception):
    """Raised by a hook that could not complete its work."""


@dataclass(frozen=True, kw_only=True)
class HookContext:
    """Everything a hook or the test runner may need during a run."""

    options: RunOptions
    config: Config
    features: Sequence[FeatureTest] = ()
    variables: Variables = field(default_factory=Variables)
    state: SharedState = field(default_factory=SharedState)
    registry: ProcessRegistry = field(default_factory=ProcessRegistry)
    running: RunningFlag = field(default_factory=RunningFlag)

    def session(self) -> ExecutionSession:
        """Session for the current execution target."""
        return session_for(self.state, self.registry)


class Hook(ABC):
    """Pluggable unit of work bound to a lifecycle phase."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def get_type(self) -> HookType:
        """Phase this hook runs in."""

    def continue_on_error(self) -> bool:
        """Whether the hook still runs after an earlier failure."""
        return False

    @abstractmethod
    def run(self, ctx: HookContext) -> None:
        """Do the hook's work, raising on failure."""


def hooks_of_type(hooks: Sequence[Hook], hook_type: HookType) -> Sequence[Hook]:
    """Hooks bound to a phase, in configured order."""
    return [hook for hook in hooks if hook.get_type() == hook_type]


__all__ = ["Hook", "HookContext", "HookError", "HookType", "hooks_of_type"]
