"""Assembling the hooks of a run from the configuration."""

from collections.abc import Sequence

from playmaster.hooks.base import Hook
from playmaster.hooks.check_dependency import CheckDependency
from playmaster.hooks.connect import Connect
from playmaster.hooks.custom import Custom
from playmaster.hooks.results import ResultsWebhook
from playmaster.hooks.setup_state import SetupState
from playmaster.models.config import Config


def load_hooks(config: Config) -> Sequence[Hook]:
    """Built-in hooks followed by the configured ones.

    The pipeline groups hooks by phase, so the relative order here only
    matters between hooks of the same phase.
    """
    hooks: list[Hook] = [Connect(), SetupState(), CheckDependency()]
    hooks.extend(Custom(config=hook_config) for hook_config in config.hooks)
    if config.webhook is not None:
        hooks.append(ResultsWebhook(config=config.webhook))
    return hooks
