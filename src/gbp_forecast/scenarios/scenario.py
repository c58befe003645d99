# src/gbp_forecast/scenarios/scenario.py
"""
Policy scenarios for forward projections.

A scenario only changes the tail of the calibrated curves: R(t) and/or the
immigration mean are shifted by a constant (or the immigration is phased out)
from the forecast start onwards. Every scenario gets its own read-only arrays,
so running one scenario can never change the inputs of another.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..simulate.errors import ConfigurationError
from .calibration import CalibratedCurves, expand_to_steps, project_series, steps_per_day


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str = ""
    r_offset: float = 0.0
    immigration_offset: float = 0.0
    immigration_taper: bool = False


MAIN = Scenario("MainScenario", "No change in R0 (no change in measures)")
OPTIMISTIC = Scenario(
    "OptimisticScenario",
    "Decline in R0 (better results from measures)",
    r_offset=-0.2,
    immigration_taper=True,
)
PESSIMISTIC = Scenario(
    "PessimisticScenario",
    "Increase in R0 (worse results from measures)",
    r_offset=0.5,
)


def default_scenarios() -> Tuple[Scenario, ...]:
    """Main, optimistic and pessimistic scenarios."""
    return (MAIN, OPTIMISTIC, PESSIMISTIC)


@dataclass(frozen=True)
class ScenarioInputs:
    """Per-step model inputs of one scenario, all of length n_steps + 1."""

    scenario: Scenario
    reproduction_number: np.ndarray
    immigration_mean: np.ndarray
    immigration_sd: np.ndarray
    step_size: float

    @property
    def n_steps(self):
        return self.reproduction_number.size - 1


def _frozen(values):
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


def build_scenario_inputs(
    curves: CalibratedCurves,
    scenario: Scenario,
    step_size: float,
    n_steps: int,
    tail_steps: int,
    immigration_cv: float = 0.5,
) -> ScenarioInputs:
    """Project calibrated daily curves onto the simulation grid for a scenario.

    R(t) is a per-day rate and is repeated on every step of a day. The
    immigration mean and sd are daily amounts, so each step of a day gets its
    share: both are divided by the number of steps per day. The immigration
    offset is in immigrants per day as well.

    Args:
        curves: calibrated daily R(t) and immigration mean
        scenario: which tail adjustment to apply
        step_size (float): h (days), must divide one day
        n_steps (int): number of simulation steps T
        tail_steps (int): steps at the end of the horizon the scenario changes
        immigration_cv (float): immigration sd as a fraction of its mean, used
            when the curves carry no sd. It is taken from the scenario's own
            (possibly tapered) mean.
    Returns:
        ScenarioInputs
    """
    if immigration_cv < 0:
        raise ConfigurationError("immigration_cv must be nonnegative")

    length = n_steps + 1
    per_day = steps_per_day(step_size)
    R = project_series(
        expand_to_steps(curves.reproduction_number, step_size),
        length,
        tail_steps,
        offset=scenario.r_offset,
    )
    im_mean = project_series(
        expand_to_steps(curves.immigration_mean, step_size),
        length,
        tail_steps,
        offset=scenario.immigration_offset,
        taper_to_zero=scenario.immigration_taper,
    ) / per_day
    if curves.immigration_sd is None:
        im_sd = im_mean * immigration_cv
    else:
        im_sd = project_series(expand_to_steps(curves.immigration_sd, step_size), length, 0) / per_day

    return ScenarioInputs(
        scenario=scenario,
        reproduction_number=_frozen(R),
        immigration_mean=_frozen(im_mean),
        immigration_sd=_frozen(im_sd),
        step_size=float(step_size),
    )
