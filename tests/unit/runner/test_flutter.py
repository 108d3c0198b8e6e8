"""Tests for the Flutter test runner."""

from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

from playmaster.execution import RemoteSession
from playmaster.hooks.base import HookContext
from playmaster.runner import flutter
from playmaster.runner.flutter import (
    FlutterBuildError,
    FlutterRunner,
    app_name,
    cleaned_pubspec,
    drive_command,
)

PUBSPEC = """\
name: sample_app
version: 1.0.0
environment:
  sdk: ^3.7.0
dependencies:
  flutter:
    sdk: flutter
  http: ^1.2.0
  shared:
    path: ../shared
dev_dependencies:
  flutter_test:
    sdk: flutter
  mocktail: ^1.0.0
dependency_overrides:
  http: 1.2.1
flutter:
  uses-material-design: true
"""


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Minimal Flutter project layout."""
    project = tmp_path / "sample"
    project.mkdir()
    (project / "pubspec.yaml").write_text(PUBSPEC)
    return project


def test_cleaned_pubspec_keeps_only_sdk_packages() -> None:
    """Dependencies shrink to the SDK packages and overrides are dropped."""
    cleaned = yaml.safe_load(cleaned_pubspec(PUBSPEC))

    assert cleaned["name"] == "sample_app"
    assert cleaned["dependencies"] == {"flutter": {"sdk": "flutter"}}
    assert cleaned["dev_dependencies"] == {
        "flutter_test": {"sdk": "flutter"},
        "integration_test": {"sdk": "flutter"},
    }
    assert "dependency_overrides" not in cleaned
    assert cleaned["flutter"] == {"uses-material-design": True}


def test_cleaned_pubspec_rejects_non_mapping() -> None:
    """A pubspec that is not a mapping is an error."""
    with pytest.raises(ValueError, match="not a mapping"):
        cleaned_pubspec("- just\n- a list\n")


def test_app_name_from_pubspec(project_dir: Path) -> None:
    """The binary is named after the pubspec package."""
    assert app_name(project_dir) == "sample_app"


def test_app_name_falls_back_to_directory(tmp_path: Path) -> None:
    """Without a pubspec name the directory name is used."""
    assert app_name(tmp_path) == tmp_path.name


def test_drive_command_sources_environment() -> None:
    """The driver runs with PlayMaster's environment and the prebuilt app."""
    cmd = drive_command("/home/tester/.playmaster", "sample_app")

    assert cmd.startswith("source /home/tester/.playmaster/.bashrc && flutter drive ")
    assert "--driver=test_driver/integration_test.dart" in cmd
    assert "--target=integration_test/generated/all_tests.dart" in cmd
    assert (
        "--use-application-binary=build/linux/x64/debug/bundle/sample_app" in cmd
    )
    assert cmd.endswith("--no-headless -d linux")


def test_drive_command_without_root_dir() -> None:
    """Without a root directory nothing is sourced."""
    assert drive_command("", "app").startswith("flutter drive ")


def test_sync_uploads_sources_and_cleaned_pubspec(project_dir: Path) -> None:
    """Build output and test sources are copied next to a cleaned pubspec."""
    session = Mock(spec=RemoteSession)
    uploaded: dict[str, str] = {}
    session.upload_file.side_effect = lambda local, remote: uploaded.update(
        {remote: local.read_text()}
    )

    FlutterRunner(project_dir=project_dir).sync(session, "/srv/app")

    synced = [call.args for call in session.upload_dir.call_args_list]
    assert synced == [
        (
            project_dir / "build/linux/x64/debug/bundle",
            "/srv/app/build/linux/x64/debug/bundle",
        ),
        (project_dir / "integration_test", "/srv/app/integration_test"),
        (project_dir / "test_driver", "/srv/app/test_driver"),
        (project_dir / "linux", "/srv/app/linux"),
    ]
    pubspec = yaml.safe_load(uploaded["/srv/app/pubspec.yaml"])
    assert "dependency_overrides" not in pubspec


def test_build_failure_raises(
    ctx: HookContext, project_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failing build stops the run before any test starts."""
    monkeypatch.setattr(flutter, "BUILD_COMMAND", "echo compiling; exit 3")

    with pytest.raises(FlutterBuildError, match="status 3"):
        FlutterRunner(project_dir=project_dir).build(ctx)

    assert ctx.registry.tracked == ()


def test_build_success(
    ctx: HookContext, project_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A successful build returns quietly."""
    monkeypatch.setattr(flutter, "BUILD_COMMAND", "echo compiling")

    FlutterRunner(project_dir=project_dir).build(ctx)
