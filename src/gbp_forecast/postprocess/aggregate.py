# src/gbp_forecast/postprocess/aggregate.py
# Helpers for consumers of the simulated matrices: new cases, coarser reporting
# periods (e.g. days from half-day steps) and tabular export.
import csv
import tempfile
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd


def new_cases(total_cases):
    """New cases per step, with a leading column of zeros for step 0."""
    total = np.asarray(total_cases)
    if total.ndim != 2:
        raise ValueError("total_cases must be a (replicates, steps) matrix")
    out = np.zeros_like(total)
    out[:, 1:] = np.diff(total, axis=1)
    return out


def to_reporting_period(matrix, steps_per_period):
    """Sample a (replicates, steps) matrix at the start of every reporting period.

    Works for stock quantities such as active and total cases.
    """
    arr = np.asarray(matrix)
    if steps_per_period < 1:
        raise ValueError("steps_per_period must be >= 1")
    if arr.ndim < 2:
        raise ValueError("matrix must have a (replicates, steps) leading shape")
    return arr[:, :: int(steps_per_period)]


def new_cases_per_period(total_cases, steps_per_period):
    """New cases summed over every reporting period (first column is zero)."""
    return new_cases(to_reporting_period(total_cases, steps_per_period))


def trajectories_to_frame(matrix, prefix="step_"):
    """One row per replicate, columns replicate, <prefix>0, <prefix>1, ..."""
    arr = np.asarray(matrix)
    if arr.ndim != 2:
        raise ValueError("matrix must be a (replicates, steps) matrix")
    df = pd.DataFrame(arr, columns=[f"{prefix}{i}" for i in range(arr.shape[1])])
    df.insert(0, "replicate", np.arange(1, arr.shape[0] + 1))
    return df


def default_csv_path(name="trajectories", use_tempfile=True):
    """Define the filepath of csv"""
    if use_tempfile:
        tf = tempfile.NamedTemporaryFile(prefix=f"{name}_", suffix=".csv")
        p = Path(tf.name)
        tf.close()
        return p
    return Path(f"{name}.csv")


def write_trajectories_csv(
    matrix,
    out_path=None,
    prefix="step_",
    metadata: Optional[Dict[str, object]] = None,
    use_tempfile=True,
):
    """Write a (replicates, steps) matrix to CSV.

    Each metadata item becomes one leading ``key,value`` row, followed by the
    header ``replicate, <prefix>0, ...``. Read it back with
    ``pd.read_csv(path, header=len(metadata))``.

    Returns:
        Path of the written file
    """
    arr = np.asarray(matrix)
    if arr.ndim != 2:
        raise ValueError("matrix must be a (replicates, steps) matrix")

    # Do file pathing
    if out_path is None:
        csv_path = default_csv_path(use_tempfile=use_tempfile)
    else:
        csv_path = Path(out_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)

    header = ["replicate"] + [f"{prefix}{i}" for i in range(arr.shape[1])]

    with csv_path.open("w", newline="") as fh:
        writer = csv.writer(fh)
        for key, value in (metadata or {}).items():
            writer.writerow([key, value])
        writer.writerow(header)
        for i, row in enumerate(arr, start=1):
            writer.writerow([i, *row.tolist()])

    return csv_path
