"""Running the pipeline while staying responsive to termination signals.

The pipeline runs on a worker thread and a listener thread waits for
SIGINT or SIGTERM. Whichever reports first decides how the run ends. The
actual signal handlers only enqueue the signal number; everything else
happens on the listener thread.
"""

import logging
import queue
import signal
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from types import FrameType

from playmaster.processes import ProcessRegistry
from playmaster.state import RunningFlag

log = logging.getLogger(__name__)

HANDLED_SIGNALS: Sequence[signal.Signals] = (signal.SIGINT, signal.SIGTERM)
WORKER_JOIN_TIMEOUT = 10.0
WAIT_INTERVAL = 0.5

type SignalHandler = Callable[[int, FrameType | None], object] | int | None


class OutcomeKind(StrEnum):
    """How a run ended."""

    DONE = "done"
    ERROR = "error"
    SIGNAL = "signal"


@dataclass(frozen=True, kw_only=True)
class Outcome:
    """First terminal event of a run."""

    kind: OutcomeKind
    error: Exception | None = None
    signum: int | None = None


class ShutdownCoordinator:
    """Owns the worker and signal-listener threads of a run."""

    def __init__(
        self,
        *,
        running: RunningFlag,
        registry: ProcessRegistry,
        signals: Sequence[signal.Signals] = HANDLED_SIGNALS,
        worker_join_timeout: float = WORKER_JOIN_TIMEOUT,
    ) -> None:
        self.running = running
        self.registry = registry
        self.signals = signals
        self.worker_join_timeout = worker_join_timeout
        self._outcomes: queue.SimpleQueue[Outcome] = queue.SimpleQueue()
        self._received: queue.SimpleQueue[int | None] = queue.SimpleQueue()

    def run(self, work: Callable[[], None]) -> Outcome:
        """Run work to completion or until a termination signal arrives.

        Must be called from the main thread for signals to be handled.
        """
        previous = self._install_handlers()
        listener = threading.Thread(
            target=self._listen, name="signal-listener", daemon=True
        )
        worker = threading.Thread(
            target=self._work, args=(work,), name="worker", daemon=True
        )
        listener.start()
        worker.start()

        try:
            outcome = self._wait()
            if outcome.kind is OutcomeKind.SIGNAL:
                self._shutdown(worker)
        finally:
            self._received.put(None)
            self._restore_handlers(previous)

        return outcome

    def _wait(self) -> Outcome:
        while True:
            try:
                return self._outcomes.get(timeout=WAIT_INTERVAL)
            except queue.Empty:
                continue

    def _shutdown(self, worker: threading.Thread) -> None:
        log.warning("⚠️ Termination requested, stopping running processes")
        self.registry.terminate_all()

        worker.join(self.worker_join_timeout)
        if worker.is_alive():
            log.warning(
                "Worker did not finish within %.0fs, exiting anyway",
                self.worker_join_timeout,
            )

    def _work(self, work: Callable[[], None]) -> None:
        try:
            work()
        except Exception as e:
            self._outcomes.put(Outcome(kind=OutcomeKind.ERROR, error=e))
        else:
            self._outcomes.put(Outcome(kind=OutcomeKind.DONE))

    def _listen(self) -> None:
        stopping = False
        while (signum := self._received.get()) is not None:
            if stopping:
                log.warning("Already shutting down, ignoring signal %s", signum)
                continue
            stopping = True
            log.warning("⚠️ Received %s", signal.Signals(signum).name)
            self.running.stop()
            self._outcomes.put(Outcome(kind=OutcomeKind.SIGNAL, signum=signum))

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        self._received.put(signum)

    def _install_handlers(self) -> dict[signal.Signals, SignalHandler]:
        previous: dict[signal.Signals, SignalHandler] = {}
        try:
            for signum in self.signals:
                previous[signum] = signal.signal(signum, self._on_signal)
        except ValueError as e:
            log.warning("Signal handling unavailable: %s", e)
        return previous

    def _restore_handlers(self, previous: dict[signal.Signals, SignalHandler]) -> None:
        for signum, handler in previous.items():
            if handler is not None:
                signal.signal(signum, handler)
