"""Options selected on the command line for a run."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True, kw_only=True)
class RunOptions:
    """Switches of the ``run`` command."""

    mode: Literal["local", "remote"] | None = None
    yes: bool = False
    setup: bool = False
