import numpy as np
import pandas as pd

from gbp_forecast.postprocess.aggregate import (
    new_cases,
    new_cases_per_period,
    to_reporting_period,
    trajectories_to_frame,
    write_trajectories_csv,
)


def test_new_cases_has_leading_zero():
    total = np.array([[3, 4, 4, 9], [1, 1, 2, 2]])
    assert new_cases(total).tolist() == [[0, 1, 0, 5], [0, 0, 1, 0]]


def test_half_day_steps_to_days():
    """Two half-day steps per day: sample stocks, sum flows."""
    total = np.array([[1, 2, 4, 5, 9]])
    assert to_reporting_period(total, 2).tolist() == [[1, 4, 9]]
    assert new_cases_per_period(total, 2).tolist() == [[0, 3, 5]]


def test_trajectories_to_frame():
    df = trajectories_to_frame(np.array([[1, 2], [3, 4]]), prefix="day_")
    assert list(df.columns) == ["replicate", "day_0", "day_1"]
    assert df["replicate"].tolist() == [1, 2]


def test_write_trajectories_csv_roundtrip(tmp_path):
    matrix = np.arange(6).reshape(2, 3)
    out = tmp_path / "nested" / "total.csv"
    metadata = {"scenario": "MainScenario", "master_seed": 42}

    path = write_trajectories_csv(matrix, out_path=out, prefix="day_", metadata=metadata)

    assert path == out
    assert path.exists()
    df = pd.read_csv(path, header=len(metadata))
    assert list(df.columns) == ["replicate", "day_0", "day_1", "day_2"]
    assert df[["day_0", "day_1", "day_2"]].to_numpy().tolist() == matrix.tolist()
    with path.open() as fh:
        assert fh.readline().strip() == "scenario,MainScenario"


def test_write_trajectories_csv_tempfile():
    path = write_trajectories_csv(np.zeros((1, 2), dtype=int))
    assert path.exists()
    path.unlink()
