"""Asking the person at the terminal."""

import logging
import select
import sys
from dataclasses import dataclass, field
from typing import TextIO

from playmaster.inputs.base import InputProvider, InputRequest

log = logging.getLogger(__name__)

PROMPT_TIMEOUT = 30.0


@dataclass(frozen=True, kw_only=True)
class PromptInputProvider(InputProvider):
    """Prompts on the terminal, giving up with an empty value after a timeout."""

    timeout: float = PROMPT_TIMEOUT
    stdin: TextIO = field(default_factory=lambda: sys.stdin, repr=False)
    stdout: TextIO = field(default_factory=lambda: sys.stdout, repr=False)

    def provide(self, request: InputRequest) -> str:
        self.stdout.write(
            f"User input requested for {request.input_name} "
            f"(waiting {self.timeout:.0f}s): "
        )
        self.stdout.flush()

        ready, _, _ = select.select([self.stdin], [], [], self.timeout)
        if not ready:
            self.stdout.write("\n")
            log.warning("No input received for %s, continuing", request.input_name)
            return ""

        return self.stdin.readline().strip()
