# common/rng.py
from typing import Optional

import numpy as np


class RNG:
    """Seedable source of uniform integers and [0, 1) floats.

    Each solver owns one instance so GA and SA never share a stream.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self.gen = np.random.default_rng(seed)

    def reseed(self, seed: Optional[int]) -> None:
        self.seed = seed
        self.gen = np.random.default_rng(seed)

    def randint(self, lo: int, hi: int) -> int:
        """Uniform integer in [lo, hi], both ends inclusive."""
        return int(self.gen.integers(lo, hi + 1))

    def rand01(self) -> float:
        return float(self.gen.random())
