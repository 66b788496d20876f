import math
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from common.errors import ConfigurationError
from common.rng import RNG

MIN_CITIES = 3

# Length gains at or below this are treated as float noise.
IMPROVEMENT_EPS = 1e-9


@dataclass(frozen=True)
class City:
    x: int
    y: int
    tag: int


@dataclass(frozen=True)
class CityConfig:
    """How many cities to scatter and the map they live on."""

    count: int = 250
    width: int = 800
    height: int = 600


@dataclass(order=True)
class Tour:
    """Closed visiting order plus its cached length.

    Tours compare by length only; ``inf`` means "not scored yet".
    """

    order: List[int] = field(compare=False)
    length: float = math.inf

    def evaluate(self, D: np.ndarray) -> float:
        self.length = tour_length(self.order, D)
        return self.length

    def copy(self) -> "Tour":
        return Tour(self.order[:], self.length)

    def is_permutation(self, n: int) -> bool:
        return len(self.order) == n and sorted(self.order) == list(range(n))


def require_min_cities(n: int) -> None:
    if n < MIN_CITIES:
        raise ConfigurationError(f"Need at least {MIN_CITIES} cities, got {n}.")


def build_distance_matrix(cities: Sequence[City]) -> np.ndarray:
    """Symmetric Euclidean distance matrix, returned read-only."""
    if len(cities) == 0:
        raise ConfigurationError("Cannot build a distance matrix without cities.")
    xy = np.array([(c.x, c.y) for c in cities], dtype=float)
    diff = xy[:, None, :] - xy[None, :, :]
    D = np.hypot(diff[..., 0], diff[..., 1])
    np.fill_diagonal(D, 0.0)
    D.setflags(write=False)
    return D


def tour_length(tour: Sequence[int], D: np.ndarray) -> float:
    """Calculate the length of a closed tour, including the edge back to the start."""
    idx = np.asarray(tour, dtype=int)
    if idx.size == 0:
        return 0.0
    return float(D[idx, np.roll(idx, -1)].sum())


def random_tour(n: int, rng: RNG) -> Tour:
    """Fisher-Yates shuffle of 0..n-1, left unscored."""
    order = list(range(n))
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return Tour(order)


class Problem:
    """Cities on a ``width`` x ``height`` map and their distance matrix."""

    def __init__(self, cities: Sequence[City], width: int, height: int):
        self.cities: List[City] = list(cities)
        self.width = width
        self.height = height
        self.D = build_distance_matrix(self.cities)

    @classmethod
    def build(cls, cities: Sequence[City], width: int, height: int) -> "Problem":
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"Map bounds must be positive, got {width}x{height}.")
        for c in cities:
            if not (0 <= c.x < width and 0 <= c.y < height):
                raise ConfigurationError(
                    f"City {c.tag} at ({c.x}, {c.y}) lies outside the {width}x{height} map."
                )
        return cls(cities, width, height)

    @classmethod
    def random(cls, cfg: CityConfig, rng: RNG) -> "Problem":
        if cfg.width <= 0 or cfg.height <= 0:
            raise ConfigurationError(f"Map bounds must be positive, got {cfg.width}x{cfg.height}.")
        cities = [
            City(rng.randint(0, cfg.width - 1), rng.randint(0, cfg.height - 1), tag)
            for tag in range(cfg.count)
        ]
        return cls.build(cities, cfg.width, cfg.height)

    @property
    def n_cities(self) -> int:
        return len(self.cities)

    @property
    def coords(self) -> np.ndarray:
        return np.array([(c.x, c.y) for c in self.cities], dtype=float)

    def tour_length(self, tour: Sequence[int]) -> float:
        return tour_length(tour, self.D)
