# src/gbp_forecast/scenarios/run_scenarios.py
"""
Run the scenario comparison: main, optimistic and pessimistic projections from
one set of calibrated curves. Defaults follow the COVID-19 setup the model was
first used for (infectious period ~35 days, gamma shaped infectivity).
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence
import logging
import pathlib

import numpy as np

from ..postprocess.aggregate import (
    new_cases_per_period,
    to_reporting_period,
    write_trajectories_csv,
)
from ..simulate.engine import SimulationOptions, simulate
from ..simulate.immigration import ImmigrationProcess, uniform_age_profile
from ..simulate.kernel import ReproductionKernel, gamma_age_density
from ..simulate.litter import LitterDistribution
from ..simulate.population import initial_population
from ..simulate.survival import trimmed_normal_survival
from .calibration import CalibratedCurves, load_calibrated_curves, steps_per_day
from .scenario import Scenario, ScenarioInputs, build_scenario_inputs, default_scenarios

# Start logger
logger = logging.getLogger(__name__)


@dataclass
class ScenarioConfig:
    sim_num: int = 1000
    horizon: int = 90
    detection_time: int = 8
    step_size: float = 0.5
    max_age: float = 60.0
    survival_mean: float = 35.0
    survival_sd: float = 5.1274
    infectivity_shape: float = 7.2734
    infectivity_scale: float = 1.3240
    infectivity_method: str = "interval"
    immigration_age_upper: float = 8.0
    immigration_cv: float = 0.5
    seed: Optional[int] = 42
    n_workers: int = 1
    out_dir: str = "data/scenarios"
    write_csv: bool = True
    scenarios: Sequence[Scenario] = field(default_factory=default_scenarios)


@dataclass(frozen=True)
class ModelComponents:
    """Scenario-independent pieces of the model."""

    survival: object
    age_density: np.ndarray
    immigration_age_profile: np.ndarray
    litter: LitterDistribution


def build_components(cfg: ScenarioConfig) -> ModelComponents:
    survival = trimmed_normal_survival(cfg.survival_mean, cfg.survival_sd, cfg.max_age, cfg.step_size)
    density = gamma_age_density(
        cfg.infectivity_shape, cfg.infectivity_scale, cfg.max_age, cfg.step_size, method=cfg.infectivity_method
    )
    profile = uniform_age_profile(cfg.immigration_age_upper, cfg.max_age, cfg.step_size)
    logger.debug("Built model components with %d age buckets", survival.n_buckets)
    return ModelComponents(survival, density, profile, LitterDistribution.single())


def simulation_steps(cfg: ScenarioConfig, n_days: int):
    """(total steps, scenario tail steps) for a history of ``n_days`` days.

    The simulation starts ``detection_time`` days before the first reported
    case and runs ``horizon`` days past the last one.
    """
    per_day = steps_per_day(cfg.step_size)
    n_steps = (n_days + cfg.detection_time + cfg.horizon) * per_day
    tail_steps = max(cfg.horizon - cfg.detection_time, 0) * per_day
    return n_steps, tail_steps


def run_scenario(cfg: ScenarioConfig, components: ModelComponents, inputs: ScenarioInputs, initial_cases: int):
    """Simulate one scenario and return the engine's summary."""
    n_buckets = components.survival.n_buckets
    kernel = ReproductionKernel.from_reproduction_number(
        components.age_density, inputs.reproduction_number, cfg.step_size
    )
    immigration = ImmigrationProcess(
        inputs.immigration_mean, inputs.immigration_sd, components.immigration_age_profile
    )
    return simulate(
        replicate_count=cfg.sim_num,
        step_count=inputs.n_steps,
        step_size=cfg.step_size,
        survival_model=components.survival,
        litter_distribution=components.litter,
        types=("infected",),
        initial_population=initial_population(initial_cases, n_buckets),
        reproduction_kernel=kernel,
        immigration_process=immigration,
        options=SimulationOptions(seed=cfg.seed, n_workers=cfg.n_workers),
    )


def run_scenarios(cfg: ScenarioConfig, curves: CalibratedCurves, initial_cases: int) -> Dict[str, dict]:
    """Run every scenario in ``cfg.scenarios``.

    Returns:
        dict scenario name -> dict with keys
            "inputs"        : ScenarioInputs
            "result"        : SimulationSummary (per step)
            "active_daily"  : (sim_num, days + 1) active cases at day boundaries
            "total_daily"   : (sim_num, days + 1) total cases at day boundaries
            "new_daily"     : (sim_num, days + 1) new cases per day
            "csv_paths"     : list of written files (empty if write_csv is off)
    """
    components = build_components(cfg)
    n_steps, tail_steps = simulation_steps(cfg, curves.n_days)
    per_day = steps_per_day(cfg.step_size)
    out_dir = pathlib.Path(cfg.out_dir)

    results = {}
    for scenario in cfg.scenarios:
        logger.info("Running %s: %s", scenario.name, scenario.description)
        inputs = build_scenario_inputs(
            curves, scenario, cfg.step_size, n_steps, tail_steps, immigration_cv=cfg.immigration_cv
        )
        result = run_scenario(cfg, components, inputs, initial_cases)

        daily = {
            "active_daily": to_reporting_period(result.active_cases, per_day),
            "total_daily": to_reporting_period(result.total_cases, per_day),
            "new_daily": new_cases_per_period(result.total_cases, per_day),
        }

        csv_paths = []
        if cfg.write_csv:
            metadata = {
                "scenario": scenario.name,
                "step_size": cfg.step_size,
                "master_seed": cfg.seed,
            }
            for key, matrix in daily.items():
                path = write_trajectories_csv(
                    matrix,
                    out_path=out_dir / f"{scenario.name}_{key}.csv",
                    prefix="day_",
                    metadata=metadata,
                )
                logger.info("CSV written to: %s", path)
                csv_paths.append(path)

        results[scenario.name] = {"inputs": inputs, "result": result, "csv_paths": csv_paths, **daily}
    return results


def main(argv=None):
    """Run the scenario comparison from a calibration CSV."""
    import argparse

    parser = argparse.ArgumentParser(description="Project main/optimistic/pessimistic scenarios.")
    parser.add_argument("--calibration", type=str, required=True,
                        help="CSV with daily R, Im_mu[, Im_sigma] (immigrants per day)")
    parser.add_argument("--initial-cases", type=int, default=1, help="Infections at the start of the simulation")
    parser.add_argument("--N", type=int, default=1000, help="Number of replicates per scenario")
    parser.add_argument("--seed", type=int, default=42, help="Master random seed")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes")
    parser.add_argument("--out", type=str, default="data/scenarios", help="Output directory")
    args = parser.parse_args(argv)

    cfg = ScenarioConfig(sim_num=args.N, seed=args.seed, n_workers=args.workers, out_dir=args.out)
    curves = load_calibrated_curves(args.calibration)
    run_scenarios(cfg, curves, args.initial_cases)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
