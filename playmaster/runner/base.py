"""Shared driving of a test process's output."""

import logging
import re
from abc import ABC, abstractmethod

from playmaster.execution import LineStream
from playmaster.hooks.base import HookContext
from playmaster.inputs.bridge import InteractiveInputBridge
from playmaster.models.feature import find_test
from playmaster.runner.events import Failed, Passed, Started, TestEvent
from playmaster.runner.parser import InputRequestHandler, OutputStreamParser
from playmaster.runner.progress import TestProgress

log = logging.getLogger(__name__)

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


class TestRunner(ABC):
    """Prepares the application under test and runs its test driver."""

    __test__ = False

    project_type: str

    @abstractmethod
    def run(self, ctx: HookContext) -> None:
        """Run the tests, updating the shared results as they complete.

        Raises:
            TestsFailedError: If any test failed
            RuntimeError: If the driver exited abnormally without failures

        """

    def consume(
        self,
        ctx: HookContext,
        stream: LineStream,
        bridge: InteractiveInputBridge | None = None,
        progress: TestProgress | None = None,
    ) -> None:
        """Feed a driver's output through the parser until it ends.

        Args:
            ctx: Run context
            stream: Output of the test driver
            bridge: Answers input requests from the tests, if any
            progress: Spinner to show while a test runs, hidden during prompts

        """
        on_input_request: InputRequestHandler | None = None
        if bridge is not None:
            on_input_request = bridge.handle
            if progress is not None:
                on_input_request = _paused_while(progress, bridge.handle)
        parser = OutputStreamParser(on_input_request=on_input_request)

        try:
            with stream:
                for event in parser.parse(stream):
                    self.on_event(ctx, event, progress)
        finally:
            if progress is not None:
                progress.stop()

        summary = parser.finish()
        ctx.state.finalize_results(
            total=summary.total,
            start_time=summary.start_time,
            end_time=summary.end_time,
            full_log=summary.full_log,
        )

        log.info("🎉 All tests completed")
        log.info(
            "✅ Passed: %d  ❌ Failed: %d  📋 Total: %d",
            summary.passed,
            summary.failed,
            summary.total,
        )

        summary.raise_for_failures()

        exit_code = stream.exit_code
        if exit_code is not None and exit_code != 0:
            raise RuntimeError(
                f"Error during tests, driver exited with status {exit_code}"
            )

    def on_event(
        self,
        ctx: HookContext,
        event: TestEvent,
        progress: TestProgress | None = None,
    ) -> None:
        """Report an event and account for it in the shared results."""
        match event:
            case Started(name=name):
                log.info("⏳ Running: %s", name)
                if progress is not None:
                    progress.start(name)
            case Passed(name=name):
                if progress is not None:
                    progress.stop()
                log.info("✅ Succeeded: %s", name)
                ctx.state.increment_passed()
            case Failed(name=name, output=output):
                if progress is not None:
                    progress.stop()
                log.info("❌ Failed: %s", name)
                if (test := find_test(ctx.features, name)) and test.description:
                    log.error("Test Description: %s", test.description)
                log.error("Test output...")
                for line in output.splitlines():
                    log.error("    %s", strip_ansi(line))
                log.error("End of test output")
                ctx.state.increment_failed()
            case _:
                pass


def _paused_while(
    progress: TestProgress, handler: InputRequestHandler
) -> InputRequestHandler:
    def handle(input_name: str, test_name: str | None) -> None:
        with progress.paused():
            handler(input_name, test_name)

    return handle
