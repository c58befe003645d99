# src/gbp_forecast/scenarios/calibration.py
# Calibrated R(t) and immigration curves as handed over by the fitting step,
# plus the helpers that turn daily values into per-step model inputs.
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from ..simulate.errors import ConfigurationError


def _readonly(values, name):
    arr = np.array(values, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise ConfigurationError(f"{name} must be a non-empty 1D series")
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError(f"{name} contains non-finite values")
    # the optimiser may return slightly negative values
    arr = np.clip(arr, 0.0, None)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class CalibratedCurves:
    """Daily reproduction number and immigration intensity over the history.

    immigration_sd is optional; scenarios fill it in from the immigration mean.
    """

    reproduction_number: np.ndarray
    immigration_mean: np.ndarray
    immigration_sd: Optional[np.ndarray] = None

    def __post_init__(self):
        R = _readonly(self.reproduction_number, "reproduction_number")
        im = _readonly(self.immigration_mean, "immigration_mean")
        if R.size != im.size:
            raise ConfigurationError(
                f"reproduction_number has {R.size} days, immigration_mean has {im.size}"
            )
        object.__setattr__(self, "reproduction_number", R)
        object.__setattr__(self, "immigration_mean", im)
        if self.immigration_sd is not None:
            sd = _readonly(self.immigration_sd, "immigration_sd")
            if sd.size != R.size:
                raise ConfigurationError(
                    f"immigration_sd has {sd.size} days, expected {R.size}"
                )
            object.__setattr__(self, "immigration_sd", sd)

    @property
    def n_days(self):
        return self.reproduction_number.size


def load_calibrated_curves(csv_path, r_col="R", mean_col="Im_mu", sd_col="Im_sigma"):
    """Read calibrated curves from a CSV with one row per day.

    Parameters
    ----------
    csv_path :
        Path to the CSV file.
    r_col, mean_col :
        Columns holding R(t) and the immigration mean. Both are required.
    sd_col :
        Column holding the immigration spread. Optional.

    Returns
    -------
    CalibratedCurves
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"Calibration CSV not found: {csv_path}")

    df = pd.read_csv(path)
    missing = [c for c in (r_col, mean_col) if c not in df.columns]
    if missing:
        raise ConfigurationError(f"Calibration CSV {csv_path} is missing columns {missing}")

    sd = df[sd_col].to_numpy(dtype=float) if sd_col in df.columns else None
    return CalibratedCurves(
        reproduction_number=df[r_col].to_numpy(dtype=float),
        immigration_mean=df[mean_col].to_numpy(dtype=float),
        immigration_sd=sd,
    )


def steps_per_day(step_size):
    """Number of steps in one day; the step size must divide a day evenly."""
    if step_size <= 0:
        raise ConfigurationError("step_size must be > 0")
    n = int(round(1.0 / step_size))
    if n < 1 or not np.isclose(n * step_size, 1.0):
        raise ConfigurationError(f"step size {step_size} does not divide one day")
    return n


def expand_to_steps(daily, step_size):
    """Repeat every daily value once per step of that day."""
    return np.repeat(np.asarray(daily, dtype=float), steps_per_day(step_size))


def project_series(history, n_steps, tail_steps, offset=0.0, taper_to_zero=False):
    """Extend a calibrated series to ``n_steps`` for a forward projection.

    The last historical value is carried forward. Over the last ``tail_steps``
    entries it is either shifted by ``offset`` or, with ``taper_to_zero``,
    decreased linearly from the last value to zero. Results are clipped at 0.

    Args:
        history: 1D series of calibrated per-step values
        n_steps (int): length of the projected series
        tail_steps (int): length of the scenario tail
        offset (float): constant added over the tail
        taper_to_zero (bool): linear ramp to 0 over the tail instead of an offset
    Returns:
        projected (nparray(n_steps,))
    """
    hist = np.asarray(history, dtype=float)
    if hist.ndim != 1 or hist.size == 0:
        raise ConfigurationError("history must be a non-empty 1D series")
    if tail_steps < 0 or tail_steps > n_steps:
        raise ConfigurationError("tail_steps must be between 0 and n_steps")

    # the scenario tail never rewrites the calibrated history
    if hist.size > n_steps - tail_steps:
        raise ConfigurationError(
            f"history has {hist.size} steps, longer than the {n_steps - tail_steps} steps before the tail"
        )

    projected = np.full(n_steps, hist[-1], dtype=float)
    projected[: hist.size] = hist
    if tail_steps > 0:
        if taper_to_zero:
            projected[n_steps - tail_steps:] = np.linspace(hist[-1], 0.0, tail_steps)
        else:
            projected[n_steps - tail_steps:] = hist[-1] + offset
    return np.clip(projected, 0.0, None)
