"""Terminal spinner naming the test that is currently running."""

from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.status import Status

SPINNER = "dots"


class TestProgress:
    """Shows one spinner per running test on stderr.

    The spinner is stopped while the user is prompted, so the prompt is
    not redrawn over.
    """

    __test__ = False

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self._status: Status | None = None
        self._current: str | None = None

    @property
    def current(self) -> str | None:
        return self._current

    @property
    def active(self) -> bool:
        return self._status is not None

    def start(self, name: str) -> None:
        self._current = name
        message = f"Running: {name}"
        if self._status is None:
            self._status = self.console.status(message, spinner=SPINNER)
            self._status.start()
        else:
            self._status.update(message)

    def stop(self) -> None:
        self._current = None
        self._hide()

    @contextmanager
    def paused(self) -> Iterator[None]:
        """Hide the spinner for the duration of the block."""
        name = self._current
        self._hide()
        try:
            yield
        finally:
            if name is not None:
                self.start(name)

    def _hide(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None
