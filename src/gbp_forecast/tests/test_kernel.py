import numpy as np
import pytest
from scipy.stats import gamma

from gbp_forecast.simulate.errors import ConfigurationError
from gbp_forecast.simulate.kernel import ReproductionKernel, gamma_age_density


def test_from_reproduction_number_integrates_to_R():
    density = [0.0, 1.0, 2.0, 1.0, 0.0]
    R = [2.5, 1.0, 0.0, 0.7]
    h = 0.5

    kernel = ReproductionKernel.from_reproduction_number(density, R, h)

    assert kernel.values.shape == (5, 1, 4)
    for t, r in enumerate(R):
        assert kernel.reproduction_number(t)[0] == pytest.approx(r)
    # mu = R * density / h with density normalised to 1/4, 2/4, 1/4
    assert kernel.intensity(2, 0, 0) == pytest.approx(2.5 * 0.5 / 0.5)


def test_type_scale_adds_types():
    kernel = ReproductionKernel.from_reproduction_number([1.0, 1.0, 0.0], [2.0, 2.0], 1.0, type_scale=[1.0, 0.25])
    assert kernel.n_types == 2
    assert np.allclose(kernel.reproduction_number(1), [2.0, 0.5])


def test_kernel_is_read_only():
    kernel = ReproductionKernel(np.ones((3, 1, 2)), step_size=1.0)
    with pytest.raises(ValueError):
        kernel.values[0, 0, 0] = 5.0


@pytest.mark.parametrize(
    "values, h",
    [
        (-np.ones((3, 1, 2)), 1.0),
        (np.ones((3, 2)), 1.0),
        (np.ones((3, 1, 2)), 0.0),
        (np.ones((3, 0, 2)), 1.0),
        (np.full((3, 1, 2), np.nan), 1.0),
    ],
)
def test_invalid_kernel_raises(values, h):
    with pytest.raises(ConfigurationError):
        ReproductionKernel(values, h)


def test_negative_R_raises():
    with pytest.raises(ConfigurationError):
        ReproductionKernel.from_reproduction_number([1.0, 0.0], [1.0, -0.5], 1.0)


def test_at_step_out_of_range():
    kernel = ReproductionKernel(np.zeros((3, 1, 2)), step_size=1.0)
    with pytest.raises(IndexError):
        kernel.at_step(2)


def test_gamma_density_sums_to_one():
    w = gamma_age_density(7.2734, 1.3240, 60.0, 0.5)
    assert w.shape == (121,)
    assert np.all(w >= 0)
    assert abs(w.sum() - 1.0) < 1e-12
    assert w[-1] == 0.0
    assert not w.flags.writeable


def test_gamma_density_matches_cdf_differences():
    """Quadrature over each bucket should agree with exact gamma cdf differences."""
    shape, scale, max_age, h = 7.2734, 1.3240, 30.0, 1.0
    w = gamma_age_density(shape, scale, max_age, h, nquad=64)

    edges = np.arange(0.0, max_age + h, h)
    exact = np.diff(gamma(a=shape, scale=scale).cdf(edges))
    exact = np.append(exact, 0.0)
    exact /= exact.sum()

    assert np.allclose(w, exact, atol=1e-8)


def test_gamma_density_invalid():
    with pytest.raises(ConfigurationError):
        gamma_age_density(0.0, 1.0, 10.0, 1.0)


def test_gamma_density_point_evaluation():
    """pdf at each bucket's lower edge, last bucket included."""
    shape, scale, max_age, h = 7.2734, 1.3240, 30.0, 0.5
    w = gamma_age_density(shape, scale, max_age, h, method="point")

    pdf = gamma(a=shape, scale=scale).pdf(np.arange(0.0, max_age + h / 2, h))
    assert np.allclose(w, pdf / pdf.sum())
    assert w[-1] > 0.0

    # mean bucket age: E[X] for lower-edge points, E[X] - h/2 for intervals
    ages = np.arange(w.size) * h
    interval = gamma_age_density(shape, scale, max_age, h)
    assert np.isclose(np.dot(w, ages) - np.dot(interval, ages), h / 2, atol=0.05)

    with pytest.raises(ConfigurationError):
        gamma_age_density(shape, scale, max_age, h, method="midpoint")
