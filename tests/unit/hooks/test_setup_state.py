"""Tests for the SetupState hook."""

import os
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from playmaster.execution.base import CommandOutput, ExecutionSession
from playmaster.hooks.base import HookContext, HookError
from playmaster.hooks.setup_state import OSTREE_MARKER, SetupState


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Home directory of the local execution target."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("DISPLAY", ":5")
    return home


def test_prepares_root_dir_and_bashrc(ctx: HookContext, home: Path) -> None:
    """The root dir is created with a .bashrc exporting DISPLAY once."""
    SetupState().run(ctx)
    SetupState().run(ctx)

    root_dir = home / ".playmaster"
    assert ctx.state.root_dir == str(root_dir)
    assert (root_dir / ".bashrc").read_text().splitlines() == ["export DISPLAY=:5"]
    assert ctx.state.os_info.is_ostree == os.path.exists(OSTREE_MARKER)


def test_detects_ostree(ctx: HookContext) -> None:
    """An ostree marker on the target is recorded."""
    session = Mock(spec=ExecutionSession)
    session.execute.side_effect = lambda cmd: CommandOutput(
        stdout="/home/tester" if "HOME" in cmd else "", stderr="", exit_code=0
    )

    with patch.object(HookContext, "session", return_value=session):
        SetupState().run(ctx)

    assert ctx.state.os_info.is_ostree
    assert ctx.state.root_dir == "/home/tester/.playmaster"


def test_failing_command_fails_hook(ctx: HookContext) -> None:
    """Errors preparing the directory surface as HookError."""
    session = Mock(spec=ExecutionSession)
    session.execute.return_value = CommandOutput(
        stdout="", stderr="Permission denied", exit_code=1
    )

    with patch.object(HookContext, "session", return_value=session):
        with pytest.raises(HookError, match="Permission denied"):
            SetupState().run(ctx)
