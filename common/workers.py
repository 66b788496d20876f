# common/workers.py
import logging
import threading
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class SteppableEngine(Protocol):
    def step(self) -> bool: ...


class StepGate:
    """Wait/notify gate: every ``tick()`` lets each waiting worker take one step.

    Ticks are counted, so a worker never misses one because another worker
    consumed it first. Ticks that arrive while a worker is busy coalesce.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._ticks = 0
        self._closed = False

    @property
    def ticks(self) -> int:
        with self._cond:
            return self._ticks

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def tick(self) -> None:
        with self._cond:
            self._ticks += 1
            self._cond.notify_all()

    def wake(self) -> None:
        with self._cond:
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def wait(self, seen: int, timeout: Optional[float] = None) -> int:
        """Block until the tick count moves past ``seen`` or the gate closes."""
        with self._cond:
            self._cond.wait_for(lambda: self._ticks != seen or self._closed, timeout)
            return self._ticks


class EngineWorker(threading.Thread):
    """Calls ``engine.step()`` once per gate tick until the engine finishes."""

    def __init__(self, name: str, engine: SteppableEngine, gate: StepGate, poll: float = 0.25):
        super().__init__(name=name, daemon=True)
        self.engine = engine
        self.gate = gate
        self.poll = poll
        self.steps = 0
        self.error: Optional[BaseException] = None
        self._stop_requested = threading.Event()
        self._progress = threading.Condition()
        self._done = False
        self._seen = gate.ticks

    def run(self) -> None:
        try:
            self._loop()
        finally:
            with self._progress:
                self._done = True
                self._progress.notify_all()

    def _loop(self) -> None:
        seen = self._seen
        while not self._stop_requested.is_set():
            ticks = self.gate.wait(seen, timeout=self.poll)
            if self.gate.closed or self._stop_requested.is_set():
                break
            if ticks == seen:
                continue
            seen = ticks
            try:
                running = self.engine.step()
            except Exception as exc:
                self.error = exc
                logger.exception("%s: step failed", self.name)
                return
            with self._progress:
                self.steps += 1
                self._progress.notify_all()
            if not running:
                logger.info("%s: engine finished after %d steps", self.name, self.steps)
                break

    def wait_for_steps(self, count: int, timeout: Optional[float] = None) -> bool:
        """Block until ``count`` steps are done or the worker exits.

        Returns True when the step count was reached.
        """
        with self._progress:
            self._progress.wait_for(lambda: self.steps >= count or self._done, timeout)
            return self.steps >= count

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_requested.set()
        self.gate.wake()
        if self.is_alive():
            self.join(timeout)
