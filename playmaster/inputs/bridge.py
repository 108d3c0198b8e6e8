"""Delivering values to tests that wait for them over D-Bus.

A test blocked on user input announces the input's name in its output and
waits for a ``Continue`` call on PlayMaster's session bus object. The bridge
obtains the value from the first provider that handles the request and
makes that call on the execution target.
"""

import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from playmaster.execution import ExecutionSession, with_env_source
from playmaster.hooks.base import HookContext
from playmaster.inputs.base import InputProvider, InputRequest
from playmaster.inputs.email import EmailCodeProvider
from playmaster.inputs.loading import load_email_backend
from playmaster.inputs.prompt import PromptInputProvider

log = logging.getLogger(__name__)

DBUS_SERVICE = "one.playmaster.E2E"
DBUS_OBJECT_PATH = "/one/playmaster/E2E"
DBUS_INTERFACE = "one.playmaster.E2E"
DBUS_CONTINUE_METHOD = "Continue"


def continue_command(value: str) -> str:
    """Shell command delivering a value to the waiting test."""
    return (
        f"busctl --user call {DBUS_SERVICE} {DBUS_OBJECT_PATH} "
        f"{DBUS_INTERFACE} {DBUS_CONTINUE_METHOD} s {shlex.quote(value)}"
    )


@dataclass(frozen=True, kw_only=True)
class InteractiveInputBridge:
    """Answers input requests announced in the test output.

    Never raises: a value that cannot be obtained is sent as an empty string
    so the test proceeds and fails on its own terms.
    """

    providers: Sequence[InputProvider]
    session: ExecutionSession
    root_dir: str = ""

    def obtain(self, request: InputRequest) -> str:
        """Ask providers in order until one handles the request."""
        for provider in self.providers:
            try:
                value = provider.provide(request)
            except Exception as e:
                log.error(
                    "Failed to obtain input %s from %s: %s",
                    request.input_name,
                    type(provider).__name__,
                    e,
                )
                return ""
            if value is not None:
                return value

        log.warning("No provider handled input %s", request.input_name)
        return ""

    def handle(self, input_name: str, test_name: str | None) -> None:
        """Obtain the value for an input and send it to the waiting test."""
        log.info("Test %s requested input %s", test_name or "?", input_name)
        value = self.obtain(InputRequest(input_name=input_name, test_name=test_name))

        cmd = continue_command(value)
        if self.root_dir:
            cmd = with_env_source(self.root_dir, cmd)

        try:
            output = self.session.execute(cmd)
        except Exception as e:
            log.error("Failed to send input %s: %s", input_name, e)
            return

        if not output.ok:
            log.error(
                "Sending input %s exited with status %d: %s",
                input_name,
                output.exit_code,
                output.stderr or output.stdout,
            )


def build_bridge(ctx: HookContext, after: datetime) -> InteractiveInputBridge:
    """Assemble the bridge for a run.

    Args:
        ctx: Run context
        after: Emails older than this are ignored when looking for codes

    Raises:
        EmailBackendNotFoundError: If the configured email backend is unknown

    """
    providers: list[InputProvider] = []

    email_config = ctx.config.email
    if email_config.enabled:
        manifest = load_email_backend(email_config.backend)
        backend_config = manifest.config_cls.model_validate(email_config.settings)
        providers.append(
            EmailCodeProvider(
                client=manifest.client_factory(backend_config),
                features=ctx.features,
                variables=ctx.variables,
                after=after,
            )
        )

    providers.append(PromptInputProvider())

    return InteractiveInputBridge(
        providers=providers, session=ctx.session(), root_dir=ctx.state.root_dir
    )
