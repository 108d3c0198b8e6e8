"""CLI entry point for PlayMaster."""

import argparse
import logging
import os
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from playmaster.coordinator import Outcome, OutcomeKind, ShutdownCoordinator
from playmaster.hooks.base import HookContext
from playmaster.hooks.loading import load_hooks
from playmaster.hooks.pipeline import HookPipeline, PipelineError
from playmaster.models.config import ConfigError, load_config
from playmaster.models.feature import load_features
from playmaster.models.options import RunOptions
from playmaster.models.variables import load_vars
from playmaster.runner.base import TestRunner
from playmaster.runner.flutter import FlutterRunner
from playmaster.runner.parser import TestsFailedError

LOG_LEVEL_ENV_VAR = "PLAYMASTER_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_SIGNAL = 130

RUNNERS: Mapping[str, Callable[[Path], TestRunner]] = {
    FlutterRunner.project_type: lambda project_dir: FlutterRunner(
        project_dir=project_dir
    ),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playmaster",
        description="Run integration tests locally or on a remote host",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the project's tests")
    run_parser.add_argument(
        "--mode",
        choices=("local", "remote"),
        default=None,
        help="Where to run the tests; asked interactively when omitted",
    )
    run_parser.add_argument(
        "--yes",
        action="store_true",
        help="Never prompt; without --mode this selects a local run",
    )
    run_parser.add_argument(
        "--setup",
        action="store_true",
        help="Only run the hooks, skip the tests",
    )
    run_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def log_level(verbose: bool) -> int | str:
    """Level from the environment, else from the verbosity switch."""
    if level := os.environ.get(LOG_LEVEL_ENV_VAR):
        return level.upper()
    return logging.DEBUG if verbose else logging.INFO


def exit_code(log: logging.Logger, outcome: Outcome) -> int:
    """Report how the run ended and map it to the process exit code."""
    match outcome.kind:
        case OutcomeKind.DONE:
            log.info("✅ Run completed")
            return EXIT_OK
        case OutcomeKind.SIGNAL:
            log.warning("⚠️ Run cancelled")
            return EXIT_SIGNAL
        case _:
            match outcome.error:
                case TestsFailedError() as e:
                    log.error("❌ %s", e)
                case PipelineError(errors=errors):
                    log.error("❌ Run failed:")
                    for error in errors:
                        log.error("    %s", error)
                case error:
                    log.error("❌ Run failed: %s", error)
            return EXIT_ERROR


def run(options: RunOptions, project_dir: Path) -> int:
    """Run the hook pipeline and tests of a project and return exit code."""
    log = logging.getLogger("playmaster")

    try:
        config = load_config(project_dir)
        features = load_features(project_dir)
        variables = load_vars(project_dir)
    except ConfigError as e:
        log.error("❌ %s", e)
        return EXIT_ERROR

    log.info("Loaded %d feature file(s)", len(features))

    runner = None if options.setup else RUNNERS[config.project_type](project_dir)
    pipeline = HookPipeline(hooks=load_hooks(config), runner=runner)
    ctx = HookContext(
        options=options, config=config, features=features, variables=variables
    )

    coordinator = ShutdownCoordinator(running=ctx.running, registry=ctx.registry)
    outcome = coordinator.run(lambda: pipeline.execute(ctx))
    return exit_code(log, outcome)


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=log_level(args.verbose),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    options = RunOptions(mode=args.mode, yes=args.yes, setup=args.setup)
    sys.exit(run(options, Path.cwd()))


if __name__ == "__main__":  # pragma: no cover
    main()
