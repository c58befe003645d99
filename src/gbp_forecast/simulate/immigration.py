# src/gbp_forecast/simulate/immigration.py
# Imported cases: people infected elsewhere who enter the population already
# infectious, at some age since infection.
import numpy as np
from scipy.stats import uniform

from .errors import ConfigurationError
from .survival import age_grid


def _as_profile(values, name):
    p = np.array(values, dtype=float)
    if p.ndim != 1 or p.size == 0:
        raise ConfigurationError(f"{name} must be a non-empty 1D sequence")
    if np.any(p < 0):
        raise ConfigurationError(f"{name} has negative entries")
    if not np.isclose(p.sum(), 1.0):
        raise ConfigurationError(f"{name} must sum to 1, got {p.sum():.6g}")
    p = p / p.sum()
    p.setflags(write=False)
    return p


class ImmigrationProcess:
    """Stateless generator of per-step immigrant counts by age and type.

    The total at step t is a gamma-Poisson draw: an intensity is drawn from a
    gamma distribution with mean ``mean[t]`` and standard deviation ``sd[t]``,
    then the count is Poisson with that intensity. ``sd[t] == 0`` gives a plain
    Poisson count and ``mean[t] == 0`` gives no immigrants. The total is split
    over age buckets (and types) with a multinomial draw.

    Args:
        mean: 1D sequence, expected immigrants per step
        sd: 1D sequence of the same length, spread of the immigration intensity
        age_profile: probability vector over age buckets 0..K
        type_profile: optional probability vector over types. When left out every
            immigrant is type 0, and the profile is widened to the simulated
            number of types by ``for_types``.
    """

    def __init__(self, mean, sd, age_profile, type_profile=None):
        m = np.array(mean, dtype=float)
        s = np.array(sd, dtype=float)

        if m.ndim != 1 or s.ndim != 1:
            raise ConfigurationError("immigration mean and sd must be 1D sequences")
        if m.shape != s.shape:
            raise ConfigurationError(
                f"immigration mean has {m.size} steps but sd has {s.size}"
            )
        if m.size == 0:
            raise ConfigurationError("immigration series are empty")
        if not (np.all(np.isfinite(m)) and np.all(np.isfinite(s))):
            raise ConfigurationError("immigration series contain non-finite values")
        if np.any(m < 0) or np.any(s < 0):
            raise ConfigurationError("immigration mean and sd must be nonnegative")

        m.setflags(write=False)
        s.setflags(write=False)
        self._mean = m
        self._sd = s
        self._age_profile = _as_profile(age_profile, "age_profile")
        self._default_types = type_profile is None
        if type_profile is None:
            type_profile = [1.0]
        self._type_profile = _as_profile(type_profile, "type_profile")

        # Joint (age, type) allocation, flattened row-major for a single multinomial draw
        self._joint = np.outer(self._age_profile, self._type_profile).ravel()
        self._joint = self._joint / self._joint.sum()

    @classmethod
    def none(cls, n_steps, n_buckets, n_types=1):
        """No immigration at all."""
        profile = np.zeros(n_buckets)
        profile[0] = 1.0
        types = np.zeros(n_types)
        types[0] = 1.0
        return cls(np.zeros(n_steps), np.zeros(n_steps), profile, types)

    def for_types(self, n_types):
        """This process for ``n_types`` types.

        A default (all type 0) profile is padded with zeros. An explicit
        profile must already have ``n_types`` entries.
        """
        if n_types == self.n_types:
            return self
        if not self._default_types:
            raise ConfigurationError(
                f"immigration type profile has {self.n_types} types, expected {n_types}"
            )
        types = np.zeros(n_types)
        types[0] = 1.0
        return ImmigrationProcess(self._mean, self._sd, self._age_profile, types)

    @property
    def mean(self):
        return self._mean

    @property
    def sd(self):
        return self._sd

    @property
    def age_profile(self):
        return self._age_profile

    @property
    def type_profile(self):
        return self._type_profile

    @property
    def n_steps(self):
        return self._mean.size

    @property
    def n_buckets(self):
        return self._age_profile.size

    @property
    def n_types(self):
        return self._type_profile.size

    def expected_total(self, step):
        return float(self._mean[step])

    def sample_total(self, step, rng):
        """Total number of immigrants arriving during ``step``."""
        m = self._mean[step]
        if m <= 0:
            return 0
        s = self._sd[step]
        if s <= 0:
            return int(rng.poisson(m))
        # Gamma with mean m and sd s: shape (m/s)^2, scale s^2/m
        lam = rng.gamma(shape=(m / s) ** 2, scale=s * s / m)
        return int(rng.poisson(lam))

    def sample(self, step, rng):
        """Immigrant counts for ``step`` as an integer (K+1, U) array."""
        if step < 0 or step >= self.n_steps:
            raise IndexError(f"step {step} outside immigration range 0..{self.n_steps - 1}")
        total = self.sample_total(step, rng)
        shape = (self.n_buckets, self.n_types)
        if total == 0:
            return np.zeros(shape, dtype=np.int64)
        return rng.multinomial(total, self._joint).astype(np.int64).reshape(shape)

    def __repr__(self):
        return (
            f"ImmigrationProcess(n_steps={self.n_steps}, n_buckets={self.n_buckets}, "
            f"n_types={self.n_types})"
        )


def uniform_age_profile(upper, max_age, step_size):
    """Immigrants' age since infection spread uniformly over [0, upper] days.

    Args:
        upper (float): oldest age (days) an immigrant can arrive with
        max_age (float): last tracked age (days)
        step_size (float): h (days)
    Returns:
        profile (nparray(K+1,)): probabilities over age buckets
    """
    if upper <= 0:
        raise ConfigurationError("upper must be > 0")
    grid = age_grid(max_age, step_size)
    pdf = uniform(loc=0.0, scale=upper).pdf(grid)
    total = float(pdf.sum())
    if total <= 0:
        raise ConfigurationError("uniform age profile has no mass on the age grid")
    return pdf / total
