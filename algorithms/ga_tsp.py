# algorithms/ga_tsp.py
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np

from common.callbacks import ProgressSink
from common.errors import ConfigurationError
from common.rng import RNG
from problems.tsp import IMPROVEMENT_EPS, Tour, random_tour, require_min_cities

logger = logging.getLogger(__name__)

History = List[float]
AlgorithmResult = Tuple[List[int], float, History]
IterationCallback = Optional[Callable[[int, float, List[int]], None]]


@dataclass(frozen=True)
class GAConfig:
    """Hyper-parameters for the Genetic Algorithm solver."""

    pop_size: int = 1000
    n_gen: int = 5000
    mutation_rate: float = 0.02
    tournament_k: int = 5
    elitism: int = 5             # top tours copied unchanged each generation
    stall_limit: int = 500       # generations without improvement before stopping
    seed: Optional[int] = None

    @classmethod
    def scaled(cls, n_cities: int, seed: Optional[int] = None) -> "GAConfig":
        """Presets that grow with the number of cities."""
        pop_size = n_cities * 10
        n_gen = n_cities * 500
        return cls(
            pop_size=pop_size,
            n_gen=n_gen,
            mutation_rate=0.1,
            tournament_k=max(2, int(pop_size * 0.001)),
            elitism=int(pop_size * 0.03),
            stall_limit=max(1, n_gen // 10),
            seed=seed,
        )

    def validate(self, n_cities: int) -> None:
        require_min_cities(n_cities)
        if self.pop_size < 2:
            raise ConfigurationError(f"pop_size must be at least 2, got {self.pop_size}.")
        if self.n_gen < 1:
            raise ConfigurationError(f"n_gen must be positive, got {self.n_gen}.")
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ConfigurationError(f"mutation_rate must lie in [0, 1], got {self.mutation_rate}.")
        if self.tournament_k < 1:
            raise ConfigurationError(f"tournament_k must be at least 1, got {self.tournament_k}.")
        if not 0 <= self.elitism < self.pop_size:
            raise ConfigurationError(
                f"elitism must lie in [0, pop_size), got {self.elitism} for pop_size {self.pop_size}."
            )
        if self.stall_limit < 1:
            raise ConfigurationError(f"stall_limit must be positive, got {self.stall_limit}.")


class GAStatus(Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    CONVERGED = "converged"      # stall limit reached
    EXHAUSTED = "exhausted"      # generation limit reached


@dataclass(frozen=True)
class GASnapshot:
    current_best: Tour
    best: Tour
    generation: int
    stall: int
    status: GAStatus

    @property
    def finished(self) -> bool:
        return self.status in (GAStatus.CONVERGED, GAStatus.EXHAUSTED)


def init_population(pop_size: int, n_cities: int, rng: RNG) -> List[Tour]:
    return [random_tour(n_cities, rng) for _ in range(pop_size)]


def evaluate_population(population: List[Tour], D: np.ndarray) -> None:
    for tour in population:
        tour.evaluate(D)


def tournament_select(population: List[Tour], rng: RNG, k: int) -> int:
    """Index of the shortest of ``k`` tours drawn with replacement."""
    last = len(population) - 1
    best = rng.randint(0, last)
    for _ in range(1, k):
        idx = rng.randint(0, last)
        if population[idx].length < population[best].length:
            best = idx
    return best


def order_crossover(parent_a: Tour, parent_b: Tour, rng: RNG) -> Tour:
    """OX: keep ``parent_a[a..b]`` in place, fill the rest in ``parent_b``'s order."""
    n = len(parent_a.order)
    a = rng.randint(0, n - 1)
    b = rng.randint(0, n - 1)
    if a > b:
        a, b = b, a

    child = [-1] * n
    taken = [False] * n
    for i in range(a, b + 1):
        gene = parent_a.order[i]
        child[i] = gene
        taken[gene] = True

    pos = (b + 1) % n
    for i in range(n):
        gene = parent_b.order[(b + 1 + i) % n]
        if not taken[gene]:
            child[pos] = gene
            pos = (pos + 1) % n
    return Tour(child)


def mutate_swap(tour: Tour, mutation_rate: float, rng: RNG) -> None:
    """Swap each gene, with probability ``mutation_rate``, with a random position."""
    order = tour.order
    n = len(order)
    for i in range(n):
        if rng.rand01() < mutation_rate:
            j = rng.randint(0, n - 1)
            order[i], order[j] = order[j], order[i]
    tour.length = float("inf")


class GeneticAlgorithmTSP:
    """Generational GA with tournament selection, OX crossover and swap mutation.

    Driven one generation at a time through :meth:`step`; every public method
    holds the engine lock so a display thread can read while another steps.
    """

    def __init__(
        self,
        D: np.ndarray,
        cfg: GAConfig,
        rng: Optional[RNG] = None,
        on_step: Optional[ProgressSink] = None,
    ):
        self.D = D
        self.n = D.shape[0]
        self.cfg = cfg
        self.rng = rng if rng is not None else RNG(cfg.seed)
        self.on_step = on_step
        self._lock = threading.Lock()
        self._population: List[Tour] = []
        self._best: Optional[Tour] = None
        self._generation = 0
        self._stall = 0
        self._status = GAStatus.UNINITIALIZED

    def initialize(self, cfg: Optional[GAConfig] = None) -> None:
        cfg = cfg if cfg is not None else self.cfg
        cfg.validate(self.n)
        with self._lock:
            self.cfg = cfg
            if cfg.seed is not None:
                self.rng.reseed(cfg.seed)
            population = init_population(cfg.pop_size, self.n, self.rng)
            evaluate_population(population, self.D)
            population.sort(key=lambda t: t.length)
            self._population = population
            self._best = population[0].copy()
            self._generation = 0
            self._stall = 0
            self._status = GAStatus.RUNNING
            best_len = self._best.length
        logger.info(
            "GA initialized: n=%d pop_size=%d elitism=%d k=%d mutation=%.3f best=%.2f",
            self.n, cfg.pop_size, cfg.elitism, cfg.tournament_k, cfg.mutation_rate, best_len,
        )

    def step(self) -> bool:
        """Advance one generation. Returns False once the run has finished."""
        with self._lock:
            if self._status is GAStatus.UNINITIALIZED:
                raise RuntimeError("GeneticAlgorithmTSP.initialize() must be called before step().")
            if self._finished():
                return False

            cfg = self.cfg
            population = self._population
            next_population = [population[e].copy() for e in range(cfg.elitism)]
            while len(next_population) < cfg.pop_size:
                p1 = population[tournament_select(population, self.rng, cfg.tournament_k)]
                p2 = population[tournament_select(population, self.rng, cfg.tournament_k)]
                child = order_crossover(p1, p2, self.rng)
                mutate_swap(child, cfg.mutation_rate, self.rng)
                next_population.append(child)

            evaluate_population(next_population, self.D)
            next_population.sort(key=lambda t: t.length)
            self._population = next_population

            if next_population[0].length + IMPROVEMENT_EPS < self._best.length:
                self._best = next_population[0].copy()
                self._stall = 0
            else:
                self._stall += 1
            self._generation += 1

            if self._stall >= cfg.stall_limit:
                self._status = GAStatus.CONVERGED
            elif self._generation >= cfg.n_gen:
                self._status = GAStatus.EXHAUSTED

            generation, best_len, status = self._generation, self._best.length, self._status

        logger.debug("GA gen %d: best=%.4f", generation, best_len)
        if status is not GAStatus.RUNNING:
            logger.info("GA %s at generation %d: best=%.4f", status.value, generation, best_len)
        if self.on_step:
            self.on_step(generation, best_len)
        return status is GAStatus.RUNNING

    def _finished(self) -> bool:
        return self._status in (GAStatus.CONVERGED, GAStatus.EXHAUSTED)

    @property
    def finished(self) -> bool:
        with self._lock:
            return self._finished()

    @property
    def status(self) -> GAStatus:
        with self._lock:
            return self._status

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def stall(self) -> int:
        with self._lock:
            return self._stall

    @property
    def best(self) -> Optional[Tour]:
        with self._lock:
            return self._best.copy() if self._best else None

    @property
    def current_best(self) -> Optional[Tour]:
        with self._lock:
            return self._population[0].copy() if self._population else None

    @property
    def population(self) -> List[Tour]:
        with self._lock:
            return [t.copy() for t in self._population]

    def snapshot(self) -> GASnapshot:
        with self._lock:
            if self._status is GAStatus.UNINITIALIZED:
                raise RuntimeError("GeneticAlgorithmTSP has not been initialized.")
            return GASnapshot(
                current_best=self._population[0].copy(),
                best=self._best.copy(),
                generation=self._generation,
                stall=self._stall,
                status=self._status,
            )

    def run(self, on_iter: IterationCallback = None) -> AlgorithmResult:
        """Initialize and step until the run converges or exhausts its generations."""
        self.initialize()
        history: History = []
        while self.step():
            best = self.best
            history.append(best.length)
            if on_iter:
                on_iter(self.generation, best.length, best.order[:])
        best = self.best
        history.append(best.length)
        if on_iter:
            on_iter(self.generation, best.length, best.order[:])
        return best.order, best.length, history


def ga_tsp(
    D: np.ndarray,
    pop_size: int = 1000,
    n_gen: int = 5000,
    mutation_rate: float = 0.02,
    tournament_k: int = 5,
    elitism: int = 5,
    stall_limit: int = 500,
    seed: Optional[int] = 123,
    on_iter: IterationCallback = None,
) -> AlgorithmResult:
    """
    Convenience wrapper mirroring the legacy functional API.
    """
    cfg = GAConfig(
        pop_size=pop_size,
        n_gen=n_gen,
        mutation_rate=mutation_rate,
        tournament_k=tournament_k,
        elitism=elitism,
        stall_limit=stall_limit,
        seed=seed,
    )
    solver = GeneticAlgorithmTSP(D, cfg)
    return solver.run(on_iter)
