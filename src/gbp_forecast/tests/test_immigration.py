import numpy as np
import pytest

from gbp_forecast.simulate.errors import ConfigurationError
from gbp_forecast.simulate.immigration import ImmigrationProcess, uniform_age_profile


def _draw_totals(process, step, n, seed):
    rng = np.random.default_rng(seed)
    return np.array([process.sample(step, rng).sum() for _ in range(n)])


def test_zero_mean_gives_no_immigrants():
    process = ImmigrationProcess([0.0, 0.0], [3.0, 0.0], [0.5, 0.5, 0.0])
    rng = np.random.default_rng(0)
    for t in range(2):
        arrivals = process.sample(t, rng)
        assert arrivals.shape == (3, 1)
        assert arrivals.sum() == 0


def test_poisson_total_when_sd_is_zero():
    process = ImmigrationProcess([4.0], [0.0], [1.0, 0.0])
    totals = _draw_totals(process, 0, 20000, seed=11)
    assert totals.mean() == pytest.approx(4.0, abs=0.1)
    assert totals.var() == pytest.approx(4.0, abs=0.3)


def test_gamma_poisson_total_is_overdispersed():
    """Mean m and intensity sd s give count variance m + s^2."""
    process = ImmigrationProcess([10.0], [5.0], [1.0, 0.0])
    totals = _draw_totals(process, 0, 20000, seed=12)
    assert np.all(totals >= 0)
    assert totals.mean() == pytest.approx(10.0, abs=0.25)
    assert totals.var() == pytest.approx(35.0, abs=3.0)


def test_age_profile_decides_the_bucket():
    process = ImmigrationProcess([6.0], [0.0], [0.0, 0.0, 1.0, 0.0])
    rng = np.random.default_rng(3)
    for _ in range(20):
        arrivals = process.sample(0, rng)
        assert arrivals[[0, 1, 3]].sum() == 0


def test_type_profile_splits_types():
    process = ImmigrationProcess([50.0], [0.0], [1.0, 0.0], type_profile=[0.0, 1.0])
    arrivals = process.sample(0, np.random.default_rng(4))
    assert arrivals.shape == (2, 2)
    assert arrivals[:, 0].sum() == 0


def test_default_type_profile_widens_to_type_zero():
    process = ImmigrationProcess([5.0], [0.0], [1.0, 0.0])
    assert process.n_types == 1
    assert process.for_types(1) is process

    widened = process.for_types(3)
    assert widened.type_profile.tolist() == [1.0, 0.0, 0.0]
    arrivals = widened.sample(0, np.random.default_rng(5))
    assert arrivals.shape == (2, 3)
    assert arrivals[:, 1:].sum() == 0

    explicit = ImmigrationProcess([5.0], [0.0], [1.0, 0.0], type_profile=[0.5, 0.5])
    with pytest.raises(ConfigurationError):
        explicit.for_types(3)


def test_none_has_no_immigration():
    process = ImmigrationProcess.none(n_steps=5, n_buckets=4, n_types=2)
    assert process.n_steps == 5
    assert process.n_buckets == 4
    assert process.n_types == 2
    assert process.expected_total(3) == 0.0


def test_sample_outside_range():
    process = ImmigrationProcess([1.0], [0.0], [1.0, 0.0])
    with pytest.raises(IndexError):
        process.sample(1, np.random.default_rng(0))


@pytest.mark.parametrize(
    "mean, sd, profile",
    [
        ([1.0, 1.0], [0.5], [1.0, 0.0]),      # length mismatch
        ([-1.0], [0.0], [1.0, 0.0]),          # negative mean
        ([1.0], [-0.5], [1.0, 0.0]),          # negative sd
        ([1.0], [0.0], [0.5, 0.2]),           # profile does not sum to 1
        ([1.0], [0.0], [1.5, -0.5]),          # negative profile entry
        ([], [], [1.0, 0.0]),                 # empty
    ],
)
def test_invalid_immigration(mean, sd, profile):
    with pytest.raises(ConfigurationError):
        ImmigrationProcess(mean, sd, profile)


def test_uniform_age_profile():
    profile = uniform_age_profile(upper=8.0, max_age=60.0, step_size=0.5)
    assert profile.shape == (121,)
    assert profile.sum() == pytest.approx(1.0)
    # ages up to 8 days share the mass equally, later ages get nothing
    assert np.allclose(profile[:16], profile[0])
    assert np.all(profile[17:] == 0)
