"""One-time codes read from a mailbox."""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from pydantic import BaseModel

from playmaster.inputs.base import InputProvider, InputRequest
from playmaster.models.feature import FeatureTest, find_email_rule
from playmaster.models.variables import Variables

log = logging.getLogger(__name__)

FETCH_TIMEOUT = 30.0
POLL_INTERVAL = 3.0


class EmailClient(Protocol):
    """Mailbox able to extract a value from the latest matching email."""

    def fetch_code(
        self,
        *,
        sender: str,
        subject_contains: str,
        pattern: re.Pattern[str],
        after: datetime,
        timeout: float,
        poll_interval: float,
    ) -> str:
        """Poll until an email matches and return the extracted value.

        Raises:
            TimeoutError: If no email matched in time

        """


@dataclass(frozen=True, kw_only=True)
class EmailBackendManifest[ConfigT: BaseModel]:
    """Email backend plugin: its settings model and client factory."""

    config_cls: type[ConfigT]
    client_factory: Callable[[ConfigT], EmailClient]


def extract_code(pattern: re.Pattern[str], text: str) -> str | None:
    """Return the first group of the first match, or the whole match."""
    if (match := pattern.search(text)) is None:
        return None
    return match.group(1) if pattern.groups else match.group(0)


@dataclass(frozen=True, kw_only=True)
class EmailCodeProvider(InputProvider):
    """Handles inputs that declare an email rule for the running test."""

    client: EmailClient
    features: Sequence[FeatureTest]
    after: datetime
    variables: Variables = field(default_factory=Variables)
    timeout: float = FETCH_TIMEOUT
    poll_interval: float = field(default=POLL_INTERVAL)

    def provide(self, request: InputRequest) -> str | None:
        if request.test_name is None:
            return None

        rule = find_email_rule(self.features, request.test_name, request.input_name)
        if rule is None:
            log.debug(
                "No email rule for input %s of test %s",
                request.input_name,
                request.test_name,
            )
            return None

        log.info("Fetching user input via email for input: %s", request.input_name)
        return self.client.fetch_code(
            sender=self.variables.replace(rule.sender),
            subject_contains=self.variables.replace(rule.subject_contains),
            pattern=re.compile(rule.pattern),
            after=self.after,
            timeout=self.timeout,
            poll_interval=self.poll_interval,
        )
