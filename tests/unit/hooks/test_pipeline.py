"""Tests for the hook pipeline."""

from dataclasses import dataclass, field
from unittest.mock import Mock

import pytest

from playmaster.hooks.base import Hook, HookContext, HookError, HookType
from playmaster.hooks.pipeline import HookPipeline, PipelineError
from playmaster.processes import ProcessRegistry
from playmaster.runner.base import TestRunner
from playmaster.runner.parser import TestsFailedError


@dataclass(frozen=True, kw_only=True)
class RecordingHook(Hook):
    """Hook appending its label to a shared list when it runs."""

    label: str
    phase: HookType
    calls: list[str]
    tolerant: bool = False
    error: Exception | None = None
    on_run: Mock = field(default_factory=Mock)

    @property
    def name(self) -> str:
        return self.label

    def get_type(self) -> HookType:
        return self.phase

    def continue_on_error(self) -> bool:
        return self.tolerant

    def run(self, ctx: HookContext) -> None:
        self.calls.append(self.label)
        self.on_run(ctx)
        if self.error is not None:
            raise self.error


def test_phases_run_in_fixed_order() -> None:
    """Hooks run grouped by phase, in configured order within a phase."""
    calls: list[str] = []
    hooks = [
        RecordingHook(label="finished-1", phase=HookType.FINISHED, calls=calls),
        RecordingHook(label="prepare-1", phase=HookType.PREPARE_SYSTEM, calls=calls),
        RecordingHook(label="connect-1", phase=HookType.CONNECT, calls=calls),
        RecordingHook(label="verify-1", phase=HookType.VERIFY_SYSTEM, calls=calls),
        RecordingHook(label="connect-2", phase=HookType.CONNECT, calls=calls),
        RecordingHook(label="finished-2", phase=HookType.FINISHED, calls=calls),
    ]

    HookPipeline(hooks=hooks).execute(
        HookContext(options=Mock(), config=Mock())
    )

    assert calls == [
        "connect-1",
        "connect-2",
        "verify-1",
        "prepare-1",
        "finished-1",
        "finished-2",
    ]


def test_runner_runs_between_pre_and_post_phases(ctx: HookContext) -> None:
    """The test step runs after PrepareSystem and before Finished."""
    calls: list[str] = []
    runner = Mock(spec=TestRunner)
    runner.run.side_effect = lambda _: calls.append("tests")
    hooks = [
        RecordingHook(label="finished", phase=HookType.FINISHED, calls=calls),
        RecordingHook(label="prepare", phase=HookType.PREPARE_SYSTEM, calls=calls),
    ]

    HookPipeline(hooks=hooks, runner=runner).execute(ctx)

    assert calls == ["prepare", "tests", "finished"]


def test_failure_skips_non_tolerant_hooks(ctx: HookContext) -> None:
    """After a failure only hooks that tolerate errors still run."""
    calls: list[str] = []
    runner = Mock(spec=TestRunner)
    hooks = [
        RecordingHook(
            label="verify-fails",
            phase=HookType.VERIFY_SYSTEM,
            calls=calls,
            error=HookError("flutter too old"),
        ),
        RecordingHook(label="verify-after", phase=HookType.VERIFY_SYSTEM, calls=calls),
        RecordingHook(
            label="verify-tolerant",
            phase=HookType.VERIFY_SYSTEM,
            calls=calls,
            tolerant=True,
        ),
        RecordingHook(label="prepare", phase=HookType.PREPARE_SYSTEM, calls=calls),
        RecordingHook(label="finished", phase=HookType.FINISHED, calls=calls),
        RecordingHook(
            label="report", phase=HookType.FINISHED, calls=calls, tolerant=True
        ),
    ]

    with pytest.raises(PipelineError) as exc_info:
        HookPipeline(hooks=hooks, runner=runner).execute(ctx)

    assert calls == ["verify-fails", "verify-tolerant", "report"]
    runner.run.assert_not_called()
    assert exc_info.value.errors == (
        "[verify_system] verify-fails: flutter too old",
    )


def test_hook_failures_are_recorded_in_results(ctx: HookContext) -> None:
    """Every hook failure is appended with its phase and hook name."""
    calls: list[str] = []
    hooks = [
        RecordingHook(
            label="connect",
            phase=HookType.CONNECT,
            calls=calls,
            error=RuntimeError("refused"),
        ),
        RecordingHook(
            label="report",
            phase=HookType.FINISHED,
            calls=calls,
            tolerant=True,
            error=HookError("webhook down"),
        ),
    ]

    with pytest.raises(PipelineError):
        HookPipeline(hooks=hooks).execute(ctx)

    assert ctx.state.results().error == [
        "[connect] connect: refused",
        "[finished] report: webhook down",
    ]


def test_tests_failed_is_raised_after_finished_hooks(ctx: HookContext) -> None:
    """Failed tests still let Finished hooks run, then surface."""
    calls: list[str] = []
    runner = Mock(spec=TestRunner)
    runner.run.side_effect = TestsFailedError(2)
    hooks = [RecordingHook(label="finished", phase=HookType.FINISHED, calls=calls)]

    with pytest.raises(TestsFailedError):
        HookPipeline(hooks=hooks, runner=runner).execute(ctx)

    assert calls == ["finished"]
    assert ctx.state.errors == ()


def test_runner_error_is_recorded(ctx: HookContext) -> None:
    """A test step system error is recorded and fails the run."""
    runner = Mock(spec=TestRunner)
    runner.run.side_effect = RuntimeError("Flutter build failed")

    with pytest.raises(PipelineError):
        HookPipeline(hooks=[], runner=runner).execute(ctx)

    assert ctx.state.errors == ("[run_tests] Flutter build failed",)


def test_cancellation_skips_remaining_work(ctx: HookContext) -> None:
    """Once the run is cancelled only tolerant Finished hooks run."""
    calls: list[str] = []
    runner = Mock(spec=TestRunner)
    stopper = Mock(side_effect=lambda c: c.running.stop())
    hooks = [
        RecordingHook(
            label="connect", phase=HookType.CONNECT, calls=calls, on_run=stopper
        ),
        RecordingHook(label="verify", phase=HookType.VERIFY_SYSTEM, calls=calls),
        RecordingHook(label="finished", phase=HookType.FINISHED, calls=calls),
        RecordingHook(
            label="report", phase=HookType.FINISHED, calls=calls, tolerant=True
        ),
    ]

    HookPipeline(hooks=hooks, runner=runner).execute(ctx)

    assert calls == ["connect", "report"]
    runner.run.assert_not_called()


def test_registry_is_drained_even_when_a_hook_raises(ctx: HookContext) -> None:
    """Tracked processes are terminated at the end of every run."""
    registry = Mock(spec=ProcessRegistry)
    context = HookContext(options=ctx.options, config=ctx.config, registry=registry)
    hooks = [
        RecordingHook(
            label="connect",
            phase=HookType.CONNECT,
            calls=[],
            error=RuntimeError("boom"),
        )
    ]

    with pytest.raises(PipelineError):
        HookPipeline(hooks=hooks).execute(context)

    registry.terminate_all.assert_called_once_with()


def test_setup_only_run_skips_tests(ctx: HookContext) -> None:
    """Without a runner the pipeline only runs hooks."""
    calls: list[str] = []
    hooks = [RecordingHook(label="prepare", phase=HookType.PREPARE_SYSTEM, calls=calls)]

    HookPipeline(hooks=hooks, runner=None).execute(ctx)

    assert calls == ["prepare"]
