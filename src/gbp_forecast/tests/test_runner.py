import numpy as np
import pandas as pd

from gbp_forecast.runner import main
from gbp_forecast.scenarios.calibration import CalibratedCurves
from gbp_forecast.scenarios.run_scenarios import ScenarioConfig, run_scenarios
from gbp_forecast.scenarios.scenario import MAIN


def test_simulate_command_writes_csv(tmp_path, capsys):
    out = tmp_path / "totals.csv"
    main(["simulate", "-N", "4", "--days", "3", "--r0", "1.2", "--immigration", "1", "--max-age", "20", "--out", str(out)])

    df = pd.read_csv(out, header=3)
    assert df.shape == (4, 1 + 4)
    assert "Done in" in capsys.readouterr().out


def test_scenarios_command(tmp_path, capsys):
    calibration = tmp_path / "calibration.csv"
    pd.DataFrame({"R": [2.0, 1.5], "Im_mu": [1.0, 0.0]}).to_csv(calibration, index=False)

    main([
        "scenarios", "--calibration", str(calibration), "-N", "3", "--horizon", "3",
        "--detection-time", "1", "--out-dir", str(tmp_path / "out"),
    ])

    written = sorted(p.name for p in (tmp_path / "out").iterdir())
    assert "MainScenario_new_daily.csv" in written
    assert len(written) == 9
    assert "PessimisticScenario" in capsys.readouterr().out


def test_both_commands_read_immigration_per_day(tmp_path):
    """R = 0 and 2 imported cases per day on a half day grid."""
    out = tmp_path / "totals.csv"
    main([
        "simulate", "-N", "1000", "--days", "10", "--r0", "0", "--immigration", "2",
        "--max-age", "20", "--out", str(out),
    ])
    totals = pd.read_csv(out, header=3).drop(columns="replicate").to_numpy()
    simulate_daily = (totals[:, -1] - totals[:, 0]).mean() / 10

    cfg = ScenarioConfig(
        sim_num=1000, horizon=6, detection_time=2, max_age=20.0, write_csv=False, scenarios=(MAIN,)
    )
    curves = CalibratedCurves([0.0] * 4, [2.0] * 4)
    new_daily = run_scenarios(cfg, curves, initial_cases=1)["MainScenario"]["new_daily"]
    scenarios_daily = new_daily[:, 1:].mean()

    # 20000 replicate days with variance 2.5 each, so both means have sd ~0.01
    assert np.isclose(simulate_daily, 2.0, atol=0.1)
    assert np.isclose(scenarios_daily, 2.0, atol=0.1)
