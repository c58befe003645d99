# src/gbp_forecast/simulate/kernel.py
# Reproduction kernel mu[a, u, t]: expected new infections per unit time caused by
# one infectious person of age a and type u at calendar step t.
from functools import lru_cache

import numpy as np
from numpy.polynomial.legendre import leggauss
from scipy.stats import gamma

from .errors import ConfigurationError
from .survival import age_grid


class ReproductionKernel:
    """Age-, type- and time-dependent offspring intensity surface.

    Args:
        values: array of shape (K+1, U, T), nonnegative
        step_size (float): the step size h the kernel was built for
    Raises:
        ConfigurationError
    """

    def __init__(self, values, step_size):
        mu = np.array(values, dtype=float)

        if mu.ndim != 3:
            raise ConfigurationError(
                f"kernel must have shape (ages, types, steps), got {mu.ndim} dimensions"
            )
        if 0 in mu.shape:
            raise ConfigurationError(f"kernel has an empty axis: shape {mu.shape}")
        if not np.all(np.isfinite(mu)):
            raise ConfigurationError("kernel contains non-finite values")
        if np.any(mu < 0):
            raise ConfigurationError("kernel intensities must be nonnegative")
        if step_size <= 0:
            raise ConfigurationError("step_size must be > 0")

        mu.setflags(write=False)
        self._values = mu
        self.step_size = float(step_size)

    @classmethod
    def from_reproduction_number(cls, age_density, R, step_size, type_scale=None):
        """Scale a fixed-shape age density by a time-varying R(t).

        mu[a, u, t] = R[t] * type_scale[u] * density[a] / h, with the density
        normalised to sum to 1, so sum_a mu[a, u, t] * h == R[t] * type_scale[u].

        Args:
            age_density: 1D nonnegative sequence of length K+1
            R: 1D nonnegative sequence, one value per step
            step_size (float): h
            type_scale: optional per-type multipliers of R (default: one type, 1.0)
        Returns:
            ReproductionKernel
        """
        density = np.array(age_density, dtype=float)
        R_arr = np.array(R, dtype=float)

        if density.ndim != 1 or R_arr.ndim != 1:
            raise ConfigurationError("age_density and R must be 1D sequences")
        if np.any(density < 0):
            raise ConfigurationError("age_density must be nonnegative")
        if np.any(R_arr < 0):
            raise ConfigurationError("reproduction numbers must be nonnegative")
        if step_size <= 0:
            raise ConfigurationError("step_size must be > 0")

        total = float(density.sum())
        if total <= 0:
            raise ConfigurationError("age_density sums to zero")
        density = density / total

        if type_scale is None:
            scale = np.ones(1, dtype=float)
        else:
            scale = np.array(type_scale, dtype=float)
            if scale.ndim != 1 or scale.size == 0:
                raise ConfigurationError("type_scale must be a non-empty 1D sequence")
            if np.any(scale < 0):
                raise ConfigurationError("type_scale must be nonnegative")

        # (K+1, 1, 1) * (1, U, 1) * (1, 1, T)
        mu = (
            density[:, np.newaxis, np.newaxis]
            * scale[np.newaxis, :, np.newaxis]
            * R_arr[np.newaxis, np.newaxis, :]
        ) / step_size
        return cls(mu, step_size)

    @property
    def values(self):
        return self._values

    @property
    def n_buckets(self):
        return self._values.shape[0]

    @property
    def n_types(self):
        return self._values.shape[1]

    @property
    def n_steps(self):
        return self._values.shape[2]

    def intensity(self, age, type_index, step):
        """mu[age, type, step]."""
        return float(self._values[age, type_index, step])

    def at_step(self, step):
        """The (K+1, U) intensity slice for calendar step ``step``."""
        if step < 0 or step >= self.n_steps:
            raise IndexError(f"step {step} outside kernel range 0..{self.n_steps - 1}")
        return self._values[:, :, step]

    def reproduction_number(self, step):
        """R(t) per type implied by the kernel: sum over age of mu * h."""
        return self.at_step(step).sum(axis=0) * self.step_size

    def __repr__(self):
        return (
            f"ReproductionKernel(n_buckets={self.n_buckets}, n_types={self.n_types}, "
            f"n_steps={self.n_steps}, step_size={self.step_size})"
        )


@lru_cache(maxsize=64)
def gamma_age_density(shape, scale, max_age, step_size, nquad=32, method="interval"):
    """Infectivity profile over age buckets from a gamma distribution.

    With method="interval", bucket a covers ages [a*h, (a+1)*h). Its weight is
    the gamma probability of that interval, computed with Gauss-Legendre
    quadrature, and the last bucket gets no weight since nobody is infectious
    past it. With method="point", bucket a gets the gamma pdf at its lower
    edge a*h, the last bucket included. Measured in buckets this is about h/2
    later than the interval weights, whose bucket a holds the mass of ages the
    bucket passes through during one step. Either way the weights are
    normalised to sum to one.

    Args:
        shape (float): gamma shape k
        scale (float): gamma scale theta (days)
        max_age (float): last tracked age (days)
        step_size (float): h (days)
        nquad (int): number of Legendre nodes per bucket
        method (str): "interval" or "point"
    Returns:
        density (nparray(K+1,)): read-only weights summing to one
    Raises:
        ConfigurationError
    """
    if shape <= 0 or scale <= 0:
        raise ConfigurationError("gamma shape and scale must be > 0")

    if method not in ("interval", "point"):
        raise ConfigurationError(f"unknown density method {method!r}, use 'interval' or 'point'")

    grid = age_grid(max_age, step_size)
    g = gamma(a=shape, scale=scale)

    if method == "point":
        density = g.pdf(grid).astype(float)
    else:
        nodes, weights = leggauss(nquad)
        half_width = 0.5 * step_size

        density = np.zeros(grid.size, dtype=float)
        for a, left in enumerate(grid[:-1]):
            midpoint = left + half_width
            u = half_width * nodes + midpoint
            density[a] = half_width * np.sum(weights * g.pdf(u))

    total = float(density.sum())
    if total <= 0:
        raise ConfigurationError("gamma density has no mass below max_age")
    density = density / total
    # cached, so callers must not mutate it
    density.setflags(write=False)
    return density
