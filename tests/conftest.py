import matplotlib

matplotlib.use("Agg")

import pytest

from problems.tsp import City, Problem


class ScriptedRNG:
    """Replays fixed draws so operator tests can pin cut points."""

    def __init__(self, ints=(), floats=()):
        self.ints = list(ints)
        self.floats = list(floats)

    def randint(self, lo, hi):
        value = self.ints.pop(0)
        assert lo <= value <= hi
        return value

    def rand01(self):
        return self.floats.pop(0)


@pytest.fixture
def square():
    cities = [City(0, 0, 0), City(0, 10, 1), City(10, 10, 2), City(10, 0, 3)]
    return Problem.build(cities, 11, 11)


@pytest.fixture
def scripted():
    return ScriptedRNG
