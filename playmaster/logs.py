"""Per-command log files for output nobody else consumes."""

import logging
import os
from datetime import datetime
from pathlib import Path

log = logging.getLogger(__name__)


def home_dir() -> Path:
    """Directory holding PlayMaster's local files."""
    if custom := os.environ.get("PLAYMASTER_HOME"):
        return Path(custom)
    return Path.home() / ".config" / "playmaster"


def logs_dir() -> Path:
    return home_dir() / "logs"


def write_command_log(name: str, stream: str, text: str) -> Path | None:
    """Append captured output to ``<logs dir>/<name>.<stream>.log``.

    Failures are logged and swallowed, a missing log file must never break
    the run or its cleanup.
    """
    path = logs_dir() / f"{name}.{stream}.log"
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(f"[{timestamp}] {text}\n")
    except OSError as e:
        log.error("Failed to write to log file %s: %s", path, e)
        return None
    return path
