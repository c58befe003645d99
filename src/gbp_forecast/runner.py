#!/usr/bin/env python3
# src/gbp_forecast/runner.py - command line runner

import argparse
import logging
import time

import numpy as np

from .postprocess.aggregate import to_reporting_period, trajectories_to_frame, write_trajectories_csv
from .scenarios import run_scenarios as scen
from .scenarios.calibration import load_calibrated_curves, steps_per_day
from .simulate.engine import SimulationOptions, simulate
from .simulate.immigration import ImmigrationProcess, uniform_age_profile
from .simulate.kernel import ReproductionKernel, gamma_age_density
from .simulate.litter import LitterDistribution
from .simulate.population import initial_population
from .simulate.survival import trimmed_normal_survival


def run_constant(args):
    """Simulate with a constant R and immigration mean over the whole run."""
    cfg = scen.ScenarioConfig(
        step_size=args.step_size, max_age=args.max_age, infectivity_method=args.infectivity_method
    )
    per_day = steps_per_day(cfg.step_size)
    n_steps = args.days * per_day

    survival = trimmed_normal_survival(cfg.survival_mean, cfg.survival_sd, cfg.max_age, cfg.step_size)
    density = gamma_age_density(
        cfg.infectivity_shape, cfg.infectivity_scale, cfg.max_age, cfg.step_size, method=cfg.infectivity_method
    )
    kernel = ReproductionKernel.from_reproduction_number(density, np.full(n_steps, args.r0), cfg.step_size)

    # immigration given per day, spread over the steps of each day
    im_mean = np.full(n_steps, args.immigration / per_day)
    immigration = ImmigrationProcess(
        im_mean,
        im_mean * cfg.immigration_cv,
        uniform_age_profile(cfg.immigration_age_upper, cfg.max_age, cfg.step_size),
    )

    result = simulate(
        replicate_count=args.N,
        step_count=n_steps,
        step_size=cfg.step_size,
        survival_model=survival,
        litter_distribution=LitterDistribution.single(),
        types=("infected",),
        initial_population=initial_population(args.initial_cases, survival.n_buckets),
        reproduction_kernel=kernel,
        immigration_process=immigration,
        options=SimulationOptions(seed=args.seed, n_workers=args.workers),
    )

    daily_total = to_reporting_period(result.total_cases, per_day)
    if args.out:
        path = write_trajectories_csv(
            daily_total,
            out_path=args.out,
            prefix="day_",
            metadata={"R0": args.r0, "immigration": args.immigration, "master_seed": args.seed},
        )
        print("Total cases written ->", path)
    else:
        print(trajectories_to_frame(daily_total, prefix="day_").describe().T.tail(5).to_string())


def main(argv=None):
    p = argparse.ArgumentParser(description="Runner")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", help="Simulate with constant R and immigration")
    sim_p.add_argument("-N", "--replicates", dest="N", type=int, default=1000,
                    metavar="N",
                    help="Number of replicates (default: 1000)")
    sim_p.add_argument("--days", type=int, default=60,
                    help="Simulation length in days (default: 60)")
    sim_p.add_argument("--r0", type=float, default=1.5,
                    help="Reproduction number (default: 1.5)")
    sim_p.add_argument("--immigration", type=float, default=0.0,
                    help="Mean imported cases per day (default: 0)")
    sim_p.add_argument("--initial-cases", type=int, default=1,
                    help="Infections at day 0 (default: 1)")
    sim_p.add_argument("--step-size", type=float, default=0.5,
                    help="Step size in days (default: 0.5)")
    sim_p.add_argument("--max-age", type=float, default=60.0,
                    help="Longest infectious period tracked, days (default: 60)")
    sim_p.add_argument("--infectivity-method", choices=("interval", "point"), default="interval",
                    help="Gamma infectivity per age bucket: probability of the bucket's interval"
                         " or pdf at its lower edge (default: interval)")
    sim_p.add_argument("--seed", type=int, default=42,
                    metavar="SEED",
                    help="RNG seed for reproducibility (default: 42)")
    sim_p.add_argument("--workers", type=int, default=1,
                    help="Worker processes (default: 1)")
    sim_p.add_argument("--out", default=None,
                    metavar="PATH",
                    help="Output CSV path for daily total cases (default: print a summary)")

    # ---------- scenarios ----------
    sc_p = sub.add_parser("scenarios", help="Main/optimistic/pessimistic projections from calibrated curves")
    sc_p.add_argument("--calibration", required=True,
                    metavar="PATH",
                    help="CSV with one row per day: R, Im_mu[, Im_sigma] (immigrants per day)")
    sc_p.add_argument("--initial-cases", type=int, default=1)
    sc_p.add_argument("-N", "--replicates", dest="N", type=int, default=1000)
    sc_p.add_argument("--horizon", type=int, default=90,
                    help="Days projected past the last calibrated day (default: 90)")
    sc_p.add_argument("--detection-time", type=int, default=8)
    sc_p.add_argument("--seed", type=int, default=42)
    sc_p.add_argument("--workers", type=int, default=1)
    sc_p.add_argument("--out-dir", default="data/scenarios")

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    t0 = time.perf_counter()

    if args.cmd == "simulate":
        run_constant(args)

    elif args.cmd == "scenarios":
        cfg = scen.ScenarioConfig(
            sim_num=args.N,
            horizon=args.horizon,
            detection_time=args.detection_time,
            seed=args.seed,
            n_workers=args.workers,
            out_dir=args.out_dir,
        )
        curves = load_calibrated_curves(args.calibration)
        results = scen.run_scenarios(cfg, curves, args.initial_cases)
        for name, res in results.items():
            median_new = np.median(res["new_daily"][:, -1])
            print(f"{name}: median new cases on the last day {median_new:.1f}")
        print("Scenario CSVs ->", cfg.out_dir)

    print(f"Done in {time.perf_counter() - t0:.2f}s")


if __name__ == "__main__":
    main()
