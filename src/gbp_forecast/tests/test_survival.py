import numpy as np
import pytest

from gbp_forecast.simulate.errors import ConfigurationError
from gbp_forecast.simulate.survival import (
    SurvivalModel,
    linear_survival,
    trimmed_normal_survival,
)


def test_step_probabilities_are_curve_ratios():
    S = [1.0, 0.8, 0.4, 0.1, 0.0]
    model = SurvivalModel(S)

    assert model.n_buckets == 5
    assert model.max_age_bucket == 4
    assert model.survival_probability(0) == pytest.approx(0.8)
    assert model.survival_probability(1) == pytest.approx(0.5)
    assert model.survival_probability(2) == pytest.approx(0.25)
    # S[4]/S[3] = 0 and nobody survives past the last bucket
    assert model.survival_probability(3) == 0.0
    assert model.survival_probability(4) == 0.0


def test_zero_survival_gives_zero_ratio():
    """Once S hits zero every later bucket has survival probability 0, not NaN."""
    model = SurvivalModel([1.0, 0.5, 0.0, 0.0, 0.0])
    p = model.step_probabilities
    assert np.all(np.isfinite(p))
    assert np.array_equal(p[1:], np.zeros(4))


def test_curve_is_normalised_and_read_only():
    model = SurvivalModel([2.0, 1.0, 0.0])
    assert model.curve[0] == 1.0
    assert model.curve[1] == pytest.approx(0.5)
    with pytest.raises(ValueError):
        model.curve[0] = 3.0


@pytest.mark.parametrize(
    "curve",
    [
        [1.0, 0.5, 0.7, 0.0],   # not monotone
        [0.0, 0.0, 0.0],        # S[0] == 0
        [1.0, 0.5, 0.1],        # does not reach zero
        [1.0, -0.1, 0.0],       # negative
        [[1.0, 0.0]],           # 2D
        [1.0],                  # too short
    ],
)
def test_invalid_curves_raise(curve):
    with pytest.raises(ConfigurationError):
        SurvivalModel(curve)


def test_linear_survival():
    model = linear_survival(11)
    assert model.n_buckets == 11
    assert np.allclose(model.curve, np.linspace(1.0, 0.0, 11))


def test_trimmed_normal_survival_shape():
    model = trimmed_normal_survival(mean=35.0, sd=5.1274, max_age=60.0, step_size=0.5)
    S = model.curve
    assert S.shape == (121,)
    assert S[0] == pytest.approx(1.0)
    assert S[-1] == 0.0
    assert np.all(np.diff(S) <= 0)
    # half of the infections are over by the mean
    assert S[70] == pytest.approx(0.5, abs=1e-6)


def test_trimmed_normal_requires_grid_multiple():
    with pytest.raises(ConfigurationError):
        trimmed_normal_survival(mean=10.0, sd=2.0, max_age=10.3, step_size=0.5)
