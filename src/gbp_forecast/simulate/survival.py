# src/gbp_forecast/simulate/survival.py
# Survival curve S(a) of the infectious period, discretised on age buckets 0..K.
# S is the probability that an infected person is still infectious at age a,
# NOT the probability of surviving the disease.
import numpy as np
from scipy.stats import norm

from .errors import ConfigurationError


class SurvivalModel:
    """Precomputed per-age survival curve.

    Args:
        curve: sequence of length K+1, nonincreasing, ``curve[0] > 0`` and
            ``curve[K] == 0``. It is normalised so that ``S[0] == 1``.
    Raises:
        ConfigurationError
    """

    def __init__(self, curve):
        S = np.array(curve, dtype=float)

        # Raise some errors
        if S.ndim != 1:
            raise ConfigurationError("survival curve must be a 1D sequence")
        if S.size < 2:
            raise ConfigurationError("survival curve needs at least two age buckets")
        if not np.all(np.isfinite(S)):
            raise ConfigurationError("survival curve contains non-finite values")
        if S[0] <= 0:
            raise ConfigurationError("survival curve must start with S[0] > 0")
        if np.any(S < 0):
            raise ConfigurationError("survival curve has negative values")
        if np.any(np.diff(S) > 0):
            raise ConfigurationError("survival curve must be nonincreasing")
        if S[-1] != 0:
            raise ConfigurationError("survival curve must reach zero at the maximum age bucket")

        S = S / S[0]
        S.setflags(write=False)
        self._curve = S

        # One-step conditional survival S[a+1]/S[a], 0 where S[a] == 0.
        # Nobody survives past bucket K.
        p = np.zeros(S.size, dtype=float)
        alive = S[:-1] > 0
        p[:-1][alive] = S[1:][alive] / S[:-1][alive]
        p = np.clip(p, 0.0, 1.0)
        p.setflags(write=False)
        self._step_probabilities = p

    @property
    def curve(self):
        return self._curve

    @property
    def n_buckets(self):
        """Number of age buckets, K+1."""
        return self._curve.size

    @property
    def max_age_bucket(self):
        """K, the last tracked age bucket."""
        return self._curve.size - 1

    @property
    def step_probabilities(self):
        """P(active at a+1 | active at a) for every bucket a = 0..K."""
        return self._step_probabilities

    def survival_probability(self, age):
        """One-step conditional survival probability for age bucket ``age``."""
        if age < 0 or age > self.max_age_bucket:
            raise IndexError(f"age bucket {age} outside 0..{self.max_age_bucket}")
        return float(self._step_probabilities[age])

    def __repr__(self):
        return f"SurvivalModel(n_buckets={self.n_buckets})"


def trimmed_normal_survival(mean, sd, max_age, step_size):
    """Survival curve of a normally distributed infectious period, trimmed at 0.

    S(x) = (1 - Phi((x - mean)/sd)) / (1 - Phi(-mean/sd)) evaluated on the grid
    0, h, ..., max_age and forced to 0 at the last bucket.

    Args:
        mean (float): average infectious period (days)
        sd (float): standard deviation of the infectious period (days)
        max_age (float): nobody stays infectious longer than this (days)
        step_size (float): bucket width h (days)
    Returns:
        SurvivalModel
    """
    if sd <= 0:
        raise ConfigurationError("sd must be > 0")
    grid = age_grid(max_age, step_size)
    S = norm.sf(grid, loc=mean, scale=sd) / norm.sf(0.0, loc=mean, scale=sd)
    S[-1] = 0.0
    return SurvivalModel(S)


def linear_survival(n_buckets):
    """Survival curve falling linearly from 1 to 0 across ``n_buckets`` buckets."""
    if n_buckets < 2:
        raise ConfigurationError("n_buckets must be >= 2")
    return SurvivalModel(np.linspace(1.0, 0.0, int(n_buckets)))


def age_grid(max_age, step_size):
    """Ages 0, h, 2h, ..., max_age of the bucket lower edges."""
    if step_size <= 0:
        raise ConfigurationError("step_size must be > 0")
    if max_age <= 0:
        raise ConfigurationError("max_age must be > 0")
    n = int(round(max_age / step_size))
    if not np.isclose(n * step_size, max_age):
        raise ConfigurationError("max_age must be a multiple of step_size")
    return np.arange(n + 1, dtype=float) * step_size
