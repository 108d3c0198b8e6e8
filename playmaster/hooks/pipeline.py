"""Ordered execution of hooks around the test step."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from playmaster.hooks.base import Hook, HookContext, HookType, hooks_of_type
from playmaster.runner.base import TestRunner
from playmaster.runner.parser import TestsFailedError

log = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised at the end of a run in which hooks or the test step failed."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = tuple(errors)
        super().__init__("; ".join(self.errors) or "Run failed")


@dataclass(frozen=True, kw_only=True)
class HookPipeline:
    """Runs hooks phase by phase, with the test step between pre and post phases.

    Once a hook fails, the remaining hooks only run if they tolerate errors.
    The Finished phase is always attempted so results can be reported.
    """

    hooks: Sequence[Hook]
    runner: TestRunner | None = None

    def run_phase(self, phase: HookType, ctx: HookContext, has_error: bool) -> bool:
        """Run the hooks of one phase in configured order.

        Args:
            phase: Phase whose hooks to run
            ctx: Run context
            has_error: Whether an earlier hook or step failed

        Returns:
            Updated error flag, True once anything has failed

        """
        for hook in hooks_of_type(self.hooks, phase):
            blocked = has_error or not ctx.running.is_running()
            if blocked and not hook.continue_on_error():
                log.info("Skipping %s hook %s after earlier failure", phase, hook.name)
                continue

            log.debug("Running %s hook %s", phase, hook.name)
            try:
                hook.run(ctx)
            except Exception as e:
                message = f"[{phase}] {hook.name}: {e}"
                log.error("❌ Hook failed %s", message)
                ctx.state.add_error(message)
                has_error = True

        return has_error

    def execute(self, ctx: HookContext) -> None:
        """Run all phases and the test step.

        Raises:
            PipelineError: If any hook or the test step failed
            TestsFailedError: If only tests failed

        """
        has_error = False
        tests_failed: TestsFailedError | None = None

        try:
            for phase in HookType.pre_hooks():
                if not ctx.running.is_running():
                    log.warning("Run cancelled, skipping %s hooks", phase)
                    continue
                has_error = self.run_phase(phase, ctx, has_error)

            if not ctx.running.is_running():
                log.warning("Run cancelled, skipping tests")
            elif has_error:
                log.error("Skipping tests because of earlier failures")
            elif self.runner is None:
                log.info("Setup only, skipping tests")
            else:
                try:
                    self.runner.run(ctx)
                except TestsFailedError as e:
                    tests_failed = e
                except Exception as e:
                    message = f"[run_tests] {e}"
                    log.error("❌ %s", message)
                    ctx.state.add_error(message)
                    has_error = True

            for phase in HookType.post_hooks():
                has_error = self.run_phase(phase, ctx, has_error)
        finally:
            ctx.registry.terminate_all()

        if has_error:
            raise PipelineError(ctx.state.errors)
        if tests_failed is not None:
            raise tests_failed

        log.info("Execution finished")
