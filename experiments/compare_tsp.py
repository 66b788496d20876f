import argparse
import logging
import os
import sys
import time
from dataclasses import replace

from algorithms.ga_tsp import GAConfig, GeneticAlgorithmTSP
from algorithms.sa_tsp import SAConfig, SimulatedAnnealingTSP, estimate_initial_temp
from common.callbacks import CsvProgressLog, make_logger
from common.errors import ConfigurationError
from common.rng import RNG
from common.workers import EngineWorker, StepGate
from problems.tsp import CityConfig, Problem
from utils.plot import plot_convergence

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Race a GA against SA on random cities")
    parser.add_argument("--cities", type=int, default=60)
    parser.add_argument("--width", type=int, default=800)
    parser.add_argument("--height", type=int, default=600)
    parser.add_argument("--seed", type=int, default=None, help="seed for cities and both solvers")
    parser.add_argument("--ticks", type=int, default=2000, help="maximum number of scheduler ticks")
    parser.add_argument("--tick-interval", type=float, default=0.0, help="seconds between ticks")
    parser.add_argument("--pop-size", type=int, default=None, help="override the scaled GA population")
    parser.add_argument("--generations", type=int, default=None)
    parser.add_argument("--sa-alpha", type=float, default=None, help="override the scaled SA alpha")
    parser.add_argument("--auto-temp", action="store_true", help="estimate SA initial temperature")
    parser.add_argument("--log-dir", default=None, help="write GA/SA progress CSVs here")
    parser.add_argument("--plot", default=None, metavar="PNG", help="save convergence plot")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def make_configs(args, problem: Problem):
    n = problem.n_cities
    ga_cfg = GAConfig.scaled(n, seed=args.seed)
    if args.pop_size is not None:
        ga_cfg = replace(
            ga_cfg,
            pop_size=args.pop_size,
            elitism=min(ga_cfg.elitism, max(0, args.pop_size - 1)),
        )
    if args.generations is not None:
        ga_cfg = replace(ga_cfg, n_gen=args.generations, stall_limit=max(1, args.generations // 10))

    sa_cfg = SAConfig.scaled(n, seed=None if args.seed is None else args.seed + 1)
    if args.sa_alpha is not None:
        sa_cfg = replace(sa_cfg, alpha=args.sa_alpha)
    if args.auto_temp:
        t0 = estimate_initial_temp(problem.D, RNG(args.seed))
        sa_cfg = replace(sa_cfg, initial_temp=t0, final_temp=min(sa_cfg.final_temp, t0 / 10.0))
    return ga_cfg, sa_cfg


def race(problem: Problem, ga_cfg: GAConfig, sa_cfg: SAConfig, ticks: int,
         tick_interval: float = 0.0, log_dir=None):
    """Step both engines on their own threads, one step per tick, until both finish."""
    ga_log, ga_cb = make_logger()
    sa_log, sa_cb = make_logger()
    sinks = []
    if log_dir:
        sinks = [
            CsvProgressLog(os.path.join(log_dir, "ga_progress.csv"), "GA"),
            CsvProgressLog(os.path.join(log_dir, "sa_progress.csv"), "SA"),
        ]

    def fan_out(memory, csv_sink):
        def cb(step_idx: int, best_len: float) -> None:
            memory(step_idx, best_len)
            if csv_sink is not None:
                csv_sink(step_idx, best_len)
        return cb

    ga = GeneticAlgorithmTSP(problem.D, ga_cfg,
                             on_step=fan_out(ga_cb, sinks[0] if sinks else None))
    sa = SimulatedAnnealingTSP(problem.D, sa_cfg,
                               on_step=fan_out(sa_cb, sinks[1] if sinks else None))
    ga.initialize()
    sa.initialize()

    gate = StepGate()
    workers = [EngineWorker("GA", ga, gate), EngineWorker("SA", sa, gate)]
    for w in workers:
        w.start()
    try:
        for tick in range(ticks):
            if not any(w.is_alive() for w in workers):
                break
            gate.tick()
            if tick_interval:
                time.sleep(tick_interval)
            # wait for both acknowledgements so ticks are not coalesced
            for w in workers:
                w.wait_for_steps(tick + 1)
    finally:
        gate.close()
        for w in workers:
            w.stop()
        for sink in sinks:
            sink.close()

    for w in workers:
        if w.error is not None:
            raise w.error
    return ga, sa, ga_log, sa_log


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        problem = Problem.random(CityConfig(args.cities, args.width, args.height), RNG(args.seed))
        ga_cfg, sa_cfg = make_configs(args, problem)
        ga_cfg.validate(problem.n_cities)
        sa_cfg.validate(problem.n_cities)
    except ConfigurationError as exc:
        logger.error("invalid configuration: %s", exc)
        return 2

    t0 = time.perf_counter()
    ga, sa, ga_log, sa_log = race(problem, ga_cfg, sa_cfg, args.ticks, args.tick_interval, args.log_dir)
    elapsed = time.perf_counter() - t0

    ga_snap, sa_snap = ga.snapshot(), sa.snapshot()
    print("\n=== RESULTS ===")
    print(f"GA: {ga_snap.best.length:.2f}  (generation {ga_snap.generation}, "
          f"stall {ga_snap.stall}, {ga_snap.status.value})")
    print(f"SA: {sa_snap.best.length:.2f}  (iterations {sa_snap.iterations}, "
          f"T={sa_snap.temperature:.3g}, {sa_snap.status.value})")
    if ga_snap.best.length < sa_snap.best.length:
        print("GA is winning!")
    elif sa_snap.best.length < ga_snap.best.length:
        print("SA is winning!")
    else:
        print("Tie!")
    print(f"Difference: {abs(ga_snap.best.length - sa_snap.best.length):.1f}  ({elapsed:.1f}s)")

    if args.plot:
        plot_convergence({"GA": ga_log["best_len"], "SA": sa_log["best_len"]}, path=args.plot)
        print(f"Saved -> {args.plot}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
