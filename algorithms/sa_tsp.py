import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np

from common.callbacks import ProgressSink
from common.errors import ConfigurationError, InvariantError
from common.rng import RNG
from problems.tsp import IMPROVEMENT_EPS, Tour, random_tour, require_min_cities

logger = logging.getLogger(__name__)

History = List[float]
AlgorithmResult = Tuple[List[int], float, History]
IterationCallback = Optional[Callable[[int, float, List[int]], None]]


@dataclass(frozen=True)
class SAConfig:
    """Hyper-parameters for the Simulated Annealing solver."""

    initial_temp: float = 1000.0
    final_temp: float = 1e-3
    alpha: float = 0.0               # T <- T / (1 + alpha*T); 0 freezes T
    neighbors_per_temp: int = 5
    stall_limit: int = 100_000       # iterations without a new best
    seed: Optional[int] = None

    @classmethod
    def scaled(cls, n_cities: int, seed: Optional[int] = None) -> "SAConfig":
        return cls(alpha=1.0 / (0.2 * n_cities), seed=seed)

    def validate(self, n_cities: int) -> None:
        require_min_cities(n_cities)
        for name in ("initial_temp", "final_temp"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0.0:
                raise ConfigurationError(f"{name} must be a positive finite number, got {value}.")
        if self.final_temp >= self.initial_temp:
            raise ConfigurationError(
                f"final_temp ({self.final_temp}) must be below initial_temp ({self.initial_temp})."
            )
        if not math.isfinite(self.alpha) or self.alpha < 0.0:
            raise ConfigurationError(f"alpha must be non-negative, got {self.alpha}.")
        if self.neighbors_per_temp < 1:
            raise ConfigurationError(
                f"neighbors_per_temp must be at least 1, got {self.neighbors_per_temp}."
            )
        if self.stall_limit < 1:
            raise ConfigurationError(f"stall_limit must be positive, got {self.stall_limit}.")


class SAStatus(Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(frozen=True)
class SASnapshot:
    current: Tour
    best: Tour
    temperature: float
    iterations: int
    stall: int
    status: SAStatus

    @property
    def finished(self) -> bool:
        return self.status is SAStatus.FINISHED


def two_opt_neighbor(tour: Tour, rng: RNG) -> Tour:
    """Copy of ``tour`` with the inclusive slice [i, j] reversed."""
    n = len(tour.order)
    i = rng.randint(0, n - 1)
    j = rng.randint(0, n - 1)
    if i > j:
        i, j = j, i
    order = tour.order
    return Tour(order[:i] + order[i:j + 1][::-1] + order[j + 1:])


def estimate_initial_temp(D: np.ndarray, rng: RNG, trials: int = 100, p0: float = 0.8) -> float:
    """Pick T0 so an average uphill 2-opt move is accepted with probability ~p0."""
    tour = random_tour(D.shape[0], rng)
    L0 = tour.evaluate(D)
    positive_jumps = []
    for _ in range(trials):
        dE = two_opt_neighbor(tour, rng).evaluate(D) - L0
        if dE > 0:
            positive_jumps.append(dE)
    if not positive_jumps:
        return max(1.0, 0.1 * L0)
    mean_dE = float(np.mean(positive_jumps))
    return max(1e-9, -mean_dE / np.log(p0))


class SimulatedAnnealingTSP:
    """Classic SA with 2-opt neighborhood for the TSP.

    Each :meth:`step` is one temperature epoch of ``neighbors_per_temp``
    Metropolis moves followed by a cooling update.
    """

    def __init__(
        self,
        D: np.ndarray,
        cfg: SAConfig,
        rng: Optional[RNG] = None,
        on_step: Optional[ProgressSink] = None,
    ):
        self.D = D
        self.n = D.shape[0]
        self.cfg = cfg
        self.rng = rng if rng is not None else RNG(cfg.seed)
        self.on_step = on_step
        self._lock = threading.Lock()
        self._current: Optional[Tour] = None
        self._best: Optional[Tour] = None
        self._temperature = cfg.initial_temp
        self._iterations = 0
        self._stall = 0
        self._status = SAStatus.UNINITIALIZED

    def initialize(self, cfg: Optional[SAConfig] = None) -> None:
        cfg = cfg if cfg is not None else self.cfg
        cfg.validate(self.n)
        with self._lock:
            self.cfg = cfg
            if cfg.seed is not None:
                self.rng.reseed(cfg.seed)
            current = random_tour(self.n, self.rng)
            current.evaluate(self.D)
            self._current = current
            self._best = current.copy()
            self._temperature = cfg.initial_temp
            self._iterations = 0
            self._stall = 0
            self._status = SAStatus.RUNNING
            best_len = self._best.length
        logger.info(
            "SA initialized: n=%d T0=%.4g Tf=%.4g alpha=%.4g neighbors=%d best=%.2f",
            self.n, cfg.initial_temp, cfg.final_temp, cfg.alpha, cfg.neighbors_per_temp, best_len,
        )

    def step(self) -> bool:
        """Run one temperature epoch. Returns False once annealing has finished."""
        with self._lock:
            if self._status is SAStatus.UNINITIALIZED:
                raise RuntimeError("SimulatedAnnealingTSP.initialize() must be called before step().")
            if self._status is SAStatus.FINISHED:
                return False

            cfg = self.cfg
            temperature = self._temperature
            if temperature <= 0.0:
                raise InvariantError(f"SA temperature must stay positive, got {temperature}.")

            current, best = self._current, self._best
            for _ in range(cfg.neighbors_per_temp):
                candidate = two_opt_neighbor(current, self.rng)
                candidate.evaluate(self.D)
                if candidate.length < current.length:
                    current = candidate
                else:
                    delta = candidate.length - current.length
                    if self.rng.rand01() < math.exp(-delta / temperature):
                        current = candidate

                if current.length + IMPROVEMENT_EPS < best.length:
                    best = current.copy()
                    self._stall = 0
                else:
                    self._stall += 1
                self._iterations += 1

            self._current, self._best = current, best
            self._temperature = temperature / (1.0 + cfg.alpha * temperature)
            if self._temperature < cfg.final_temp or self._stall >= cfg.stall_limit:
                self._status = SAStatus.FINISHED

            iterations, best_len = self._iterations, best.length
            temperature, status, stall = self._temperature, self._status, self._stall

        logger.debug("SA it %d: T=%.4g best=%.4f", iterations, temperature, best_len)
        if status is SAStatus.FINISHED:
            logger.info(
                "SA finished after %d iterations (T=%.4g, stall=%d): best=%.4f",
                iterations, temperature, stall, best_len,
            )
        if self.on_step:
            self.on_step(iterations, best_len)
        return status is SAStatus.RUNNING

    @property
    def finished(self) -> bool:
        with self._lock:
            return self._status is SAStatus.FINISHED

    @property
    def status(self) -> SAStatus:
        with self._lock:
            return self._status

    @property
    def temperature(self) -> float:
        with self._lock:
            return self._temperature

    @property
    def iterations(self) -> int:
        with self._lock:
            return self._iterations

    @property
    def stall(self) -> int:
        with self._lock:
            return self._stall

    @property
    def current(self) -> Optional[Tour]:
        with self._lock:
            return self._current.copy() if self._current else None

    @property
    def best(self) -> Optional[Tour]:
        with self._lock:
            return self._best.copy() if self._best else None

    def snapshot(self) -> SASnapshot:
        with self._lock:
            if self._status is SAStatus.UNINITIALIZED:
                raise RuntimeError("SimulatedAnnealingTSP has not been initialized.")
            return SASnapshot(
                current=self._current.copy(),
                best=self._best.copy(),
                temperature=self._temperature,
                iterations=self._iterations,
                stall=self._stall,
                status=self._status,
            )

    def run(self, on_iter: IterationCallback = None) -> AlgorithmResult:
        """Initialize and anneal until the temperature floor or the stall limit."""
        self.initialize()
        history: History = [self.best.length]
        running = True
        while running:
            running = self.step()
            best = self.best
            history.append(best.length)
            if on_iter:
                on_iter(self.iterations, best.length, best.order[:])
        best = self.best
        return best.order, best.length, history


def simulated_annealing_tsp(
    D: np.ndarray,
    initial_temp: float = 1000.0,
    final_temp: float = 1e-3,
    alpha: float = 0.01,
    neighbors_per_temp: int = 5,
    stall_limit: int = 100_000,
    seed: Optional[int] = 123,
    on_iter: IterationCallback = None,
) -> AlgorithmResult:
    """
    Convenience wrapper that preserves the historical functional signature.
    """
    cfg = SAConfig(
        initial_temp=initial_temp,
        final_temp=final_temp,
        alpha=alpha,
        neighbors_per_temp=neighbors_per_temp,
        stall_limit=stall_limit,
        seed=seed,
    )
    solver = SimulatedAnnealingTSP(D, cfg)
    return solver.run(on_iter)
