import math

import pytest

import algorithms.ga_tsp as ga_module
from algorithms.ga_tsp import (
    GAConfig,
    GAStatus,
    GeneticAlgorithmTSP,
    ga_tsp,
    init_population,
    mutate_swap,
    order_crossover,
    tournament_select,
)
from common.callbacks import make_logger
from common.errors import ConfigurationError
from common.rng import RNG
from problems.tsp import CityConfig, Problem, Tour, random_tour


@pytest.fixture
def problem():
    return Problem.random(CityConfig(15, 200, 200), RNG(11))


def small_cfg(**kw):
    base = dict(pop_size=30, n_gen=40, mutation_rate=0.05, tournament_k=3,
                elitism=2, stall_limit=100, seed=5)
    base.update(kw)
    return GAConfig(**base)


def test_init_population_is_unscored_permutations():
    population = init_population(20, 9, RNG(0))
    assert len(population) == 20
    assert all(t.is_permutation(9) and t.length == math.inf for t in population)


def test_order_crossover_with_fixed_cuts(scripted):
    a = Tour([0, 1, 2, 3, 4, 5, 6, 7])
    b = Tour([7, 6, 5, 4, 3, 2, 1, 0])
    child = order_crossover(a, b, scripted(ints=[5, 2]))
    assert child.order == [7, 6, 2, 3, 4, 5, 1, 0]
    assert child.length == math.inf


def test_order_crossover_full_slice_copies_parent_a(scripted):
    a = Tour([3, 1, 0, 2])
    b = Tour([0, 1, 2, 3])
    assert order_crossover(a, b, scripted(ints=[0, 3])).order == [3, 1, 0, 2]


@pytest.mark.parametrize("n", [3, 4, 10, 33])
def test_order_crossover_yields_permutation(n):
    rng = RNG(n)
    for _ in range(200):
        a, b = random_tour(n, rng), random_tour(n, rng)
        assert order_crossover(a, b, rng).is_permutation(n)


def test_order_crossover_self_is_identity():
    rng = RNG(4)
    for n in (3, 8, 21):
        for _ in range(50):
            parent = random_tour(n, rng)
            assert order_crossover(parent, parent, rng).order == parent.order


def test_mutate_swap_zero_rate_keeps_order():
    tour = Tour([4, 2, 0, 1, 3], 12.0)
    mutate_swap(tour, 0.0, RNG(0))
    assert tour.order == [4, 2, 0, 1, 3]
    assert tour.length == math.inf


def test_mutate_swap_draws_per_gene(scripted):
    # genes 0 and 3 draw below the rate; a draw equal to the rate does not swap
    tour = Tour([0, 1, 2, 3, 4], 10.0)
    rng = scripted(ints=[4, 1], floats=[0.2, 0.9, 0.5, 0.1, 0.7])
    mutate_swap(tour, 0.5, rng)
    assert tour.order == [4, 3, 2, 1, 0]
    assert tour.length == math.inf
    assert rng.ints == [] and rng.floats == []


def test_mutate_swap_full_rate_stays_permutation():
    rng = RNG(2)
    for _ in range(100):
        tour = random_tour(12, rng)
        mutate_swap(tour, 1.0, rng)
        assert tour.is_permutation(12)


def test_tournament_select_k1_returns_valid_index():
    population = [Tour([0, 1, 2], float(i)) for i in range(6)]
    rng = RNG(0)
    assert all(0 <= tournament_select(population, rng, 1) < 6 for _ in range(50))


def test_tournament_select_prefers_shortest():
    population = [Tour([0, 1, 2], length) for length in (9.0, 7.0, 1.0, 8.0, 5.0)]
    assert tournament_select(population, RNG(3), 200) == 2


def test_tournament_select_picks_minimum_of_draws(scripted):
    population = [Tour([0, 1, 2], length) for length in (9.0, 7.0, 1.0, 8.0)]
    assert tournament_select(population, scripted(ints=[0, 3, 1]), 3) == 1


@pytest.mark.parametrize("bad", [
    dict(pop_size=1, elitism=0),
    dict(n_gen=0),
    dict(mutation_rate=1.5),
    dict(mutation_rate=-0.1),
    dict(tournament_k=0),
    dict(elitism=30),
    dict(elitism=-1),
    dict(stall_limit=0),
])
def test_invalid_config_raises(problem, bad):
    with pytest.raises(ConfigurationError):
        small_cfg(**bad).validate(problem.n_cities)


def test_too_few_cities_rejected(square):
    D = square.D[:2, :2]
    engine = GeneticAlgorithmTSP(D, small_cfg())
    with pytest.raises(ConfigurationError):
        engine.initialize()
    assert engine.status is GAStatus.UNINITIALIZED


def test_scaled_config_is_valid():
    cfg = GAConfig.scaled(50, seed=1)
    assert cfg.pop_size == 500
    assert cfg.n_gen == 25000
    assert cfg.elitism == 15
    assert cfg.tournament_k == 2
    assert cfg.stall_limit == 2500
    cfg.validate(50)


def test_step_before_initialize_raises(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg())
    with pytest.raises(RuntimeError):
        engine.step()
    with pytest.raises(RuntimeError):
        engine.snapshot()


def test_initialize_sorts_population_and_sets_best(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg())
    engine.initialize()
    lengths = [t.length for t in engine.population]
    assert lengths == sorted(lengths)
    assert engine.best.length == lengths[0]
    assert engine.generation == 0
    assert engine.status is GAStatus.RUNNING


def test_population_sorted_and_best_non_increasing(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg())
    engine.initialize()
    previous_best = engine.best.length
    for _ in range(25):
        engine.step()
        population = engine.population
        assert len(population) == 30
        lengths = [t.length for t in population]
        assert lengths == sorted(lengths)
        assert all(t.is_permutation(problem.n_cities) for t in population)
        assert engine.best.length <= previous_best
        previous_best = engine.best.length


def test_elites_survive_a_generation(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg(elitism=4, mutation_rate=0.3))
    engine.initialize()
    for _ in range(10):
        elites = [t.order for t in engine.population[:4]]
        engine.step()
        survivors = [t.order for t in engine.population]
        for order in elites:
            assert order in survivors


def test_best_parent_self_crossover_reproduces_it(problem, monkeypatch):
    cfg = small_cfg(elitism=0, mutation_rate=0.0, tournament_k=30)
    engine = GeneticAlgorithmTSP(problem.D, cfg)
    engine.initialize()
    best = engine.current_best
    monkeypatch.setattr(ga_module, "tournament_select", lambda population, rng, k: 0)
    engine.step()
    assert all(t.order == best.order for t in engine.population)
    assert engine.current_best.length == pytest.approx(best.length)


def test_exhausts_after_generation_limit(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg(n_gen=3))
    engine.initialize()
    assert engine.step() is True
    assert engine.step() is True
    assert engine.step() is False
    assert engine.status is GAStatus.EXHAUSTED
    before = engine.snapshot()
    assert engine.step() is False
    after = engine.snapshot()
    assert after.generation == before.generation == 3
    assert after.best.order == before.best.order
    assert after.current_best.order == before.current_best.order


def test_converges_on_stall(square):
    engine = GeneticAlgorithmTSP(square.D, small_cfg(pop_size=20, n_gen=1000, stall_limit=3))
    engine.initialize()
    for _ in range(200):
        if not engine.step():
            break
    assert engine.status is GAStatus.CONVERGED
    assert engine.stall == 3
    assert engine.finished


def test_square_converges_to_perimeter(square):
    order, length, history = ga_tsp(square.D, pop_size=20, n_gen=60, mutation_rate=0.1,
                                    tournament_k=3, elitism=2, stall_limit=20, seed=3)
    assert length == pytest.approx(40.0, abs=1e-6)
    coords = square.coords
    for i in range(4):
        a, b = coords[order[i]], coords[order[(i + 1) % 4]]
        # square edges differ in exactly one coordinate, diagonals in both
        assert (a[0] == b[0]) != (a[1] == b[1])
    assert history == sorted(history, reverse=True)


def test_run_finds_good_tour(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg(pop_size=60, n_gen=80))
    start = GeneticAlgorithmTSP(problem.D, small_cfg(pop_size=60, n_gen=80))
    start.initialize()
    order, length, history = engine.run()
    assert sorted(order) == list(range(problem.n_cities))
    assert length == pytest.approx(problem.tour_length(order))
    assert length <= start.best.length


def test_same_seed_same_run(problem):
    a = GeneticAlgorithmTSP(problem.D, small_cfg()).run()
    b = GeneticAlgorithmTSP(problem.D, small_cfg()).run()
    assert a == b


def test_progress_sink_receives_generation_and_best(problem):
    log, cb = make_logger()
    engine = GeneticAlgorithmTSP(problem.D, small_cfg(n_gen=5), on_step=cb)
    engine.initialize()
    while engine.step():
        pass
    assert log["step"] == [1, 2, 3, 4, 5]
    assert log["best_len"][-1] == pytest.approx(engine.best.length)


def test_failed_reinitialize_keeps_state(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg())
    engine.initialize()
    engine.step()
    with pytest.raises(ConfigurationError):
        engine.initialize(small_cfg(elitism=100))
    assert engine.status is GAStatus.RUNNING
    assert engine.generation == 1
    assert engine.cfg.elitism == 2


def test_reinitialize_resets_counters(problem):
    engine = GeneticAlgorithmTSP(problem.D, small_cfg())
    engine.initialize()
    for _ in range(5):
        engine.step()
    engine.initialize()
    assert engine.generation == 0
    assert engine.stall == 0
