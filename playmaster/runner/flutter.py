"""Flutter integration tests driven by ``flutter drive``."""

import logging
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from playmaster.execution import (
    ExecutionSession,
    LocalSession,
    RemoteSession,
    display,
    with_env_source,
)
from playmaster.hooks.base import HookContext
from playmaster.inputs.bridge import build_bridge
from playmaster.runner.base import TestRunner
from playmaster.runner.progress import TestProgress

log = logging.getLogger(__name__)

PUBSPEC = "pubspec.yaml"
TEST_TARGET = "integration_test/generated/all_tests.dart"
TEST_DRIVER = "test_driver/integration_test.dart"
BUNDLE_DIR = "build/linux/x64/debug/bundle"
REMOTE_APP_DIR = "flutter_app"
SYNCED_DIRS: Sequence[str] = (BUNDLE_DIR, "integration_test", "test_driver", "linux")

BUILD_COMMAND = (
    f"flutter pub get && flutter build linux --debug --target={TEST_TARGET}"
)
BUILD_NAME = "flutter build"
DRIVE_NAME = "flutter drive"

SDK_PACKAGE = {"sdk": "flutter"}


class FlutterBuildError(Exception):
    """Raised when the application under test cannot be built."""


def app_name(project_dir: Path) -> str:
    """Name of the built binary, as declared in ``pubspec.yaml``."""
    try:
        pubspec = yaml.safe_load((project_dir / PUBSPEC).read_text()) or {}
    except FileNotFoundError:
        pubspec = {}
    name = pubspec.get("name") if isinstance(pubspec, dict) else None
    return name if isinstance(name, str) and name else project_dir.name


def cleaned_pubspec(content: str) -> str:
    """Reduce a pubspec to what running the prebuilt tests needs.

    Path and git dependencies of the project cannot be resolved on another
    host, so only the SDK packages are kept.
    """
    pubspec: Any = yaml.safe_load(content)
    if not isinstance(pubspec, dict):
        raise ValueError("pubspec.yaml root is not a mapping")

    pubspec["dependencies"] = {"flutter": dict(SDK_PACKAGE)}
    pubspec["dev_dependencies"] = {
        "flutter_test": dict(SDK_PACKAGE),
        "integration_test": dict(SDK_PACKAGE),
    }
    pubspec.pop("dependency_overrides", None)
    return yaml.safe_dump(pubspec, sort_keys=False)


def drive_command(root_dir: str, binary: str) -> str:
    """Command running the integration tests against a prebuilt binary."""
    cmd = (
        f"flutter drive --driver={TEST_DRIVER} --target={TEST_TARGET} "
        f"--use-application-binary={BUNDLE_DIR}/{binary} --no-headless -d linux"
    )
    return with_env_source(root_dir, cmd) if root_dir else cmd


@dataclass(frozen=True, kw_only=True)
class FlutterRunner(TestRunner):
    """Builds the app locally and drives its tests on the execution target."""

    project_type = "flutter"

    project_dir: Path = field(default_factory=Path.cwd)

    def run(self, ctx: HookContext) -> None:
        root_dir = ctx.state.root_dir
        session = ctx.session()

        self.build(ctx)

        cmd = drive_command(root_dir, app_name(self.project_dir))
        if isinstance(session, RemoteSession):
            exec_dir = f"{root_dir.rstrip('/')}/{REMOTE_APP_DIR}"
            self.sync(session, exec_dir)
            log.info("Running Flutter tests remotely")
            bridge = build_bridge(ctx, after=datetime.now(UTC))
            stream = session.stream(cmd, name=DRIVE_NAME, cwd=exec_dir)
        else:
            log.info("Running Flutter tests locally")
            bridge = build_bridge(ctx, after=datetime.now(UTC))
            stream = session.stream(
                cmd,
                name=DRIVE_NAME,
                cwd=str(self.project_dir),
                env={"DISPLAY": display()},
            )

        self.consume(ctx, stream, bridge, progress=TestProgress())

    def build(self, ctx: HookContext) -> None:
        """Build the debug bundle with the test target as entrypoint.

        Raises:
            FlutterBuildError: If the build exits with a non-zero status

        """
        log.info("Building Flutter app...")
        builder: ExecutionSession = LocalSession(registry=ctx.registry)

        tail: list[str] = []
        with builder.stream(
            BUILD_COMMAND, name=BUILD_NAME, cwd=str(self.project_dir)
        ) as stream:
            for line in stream:
                log.debug("%s", line)
                tail = [*tail[-19:], line]

        if stream.exit_code != 0:
            for line in tail:
                log.error("    %s", line)
            raise FlutterBuildError(
                f"Flutter build failed with status {stream.exit_code}"
            )

    def sync(self, session: RemoteSession, exec_dir: str) -> None:
        """Copy the build and test sources to the remote host."""
        for relative in SYNCED_DIRS:
            log.info("Syncing %s to remote...", relative)
            session.upload_dir(self.project_dir / relative, f"{exec_dir}/{relative}")

        log.info("Syncing cleaned %s to remote...", PUBSPEC)
        cleaned = cleaned_pubspec((self.project_dir / PUBSPEC).read_text())
        with tempfile.TemporaryDirectory() as tmp:
            local_pubspec = Path(tmp) / PUBSPEC
            local_pubspec.write_text(cleaned)
            session.upload_file(local_pubspec, f"{exec_dir}/{PUBSPEC}")
