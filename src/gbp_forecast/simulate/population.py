# src/gbp_forecast/simulate/population.py
import numpy as np

from .errors import ConfigurationError


def as_population(values, n_buckets, n_types):
    """Validate a population vector and return it as an int64 (K+1, U) array.

    A 1D vector of length K+1 is accepted when there is a single type.
    """
    Z = np.asarray(values)
    if Z.ndim == 1 and n_types == 1:
        Z = Z.reshape(-1, 1)
    if Z.shape != (n_buckets, n_types):
        raise ConfigurationError(
            f"population has shape {Z.shape}, expected ({n_buckets}, {n_types})"
        )
    if not np.all(np.isfinite(Z)):
        raise ConfigurationError("population contains non-finite values")
    if np.any(Z < 0):
        raise ConfigurationError("population counts must be nonnegative")
    if not np.all(np.equal(np.mod(Z, 1), 0)):
        raise ConfigurationError("population counts must be integers")
    return np.array(Z, dtype=np.int64)


def initial_population(count, n_buckets, n_types=1):
    """All initial infections at age bucket 0, type 0."""
    if count < 0:
        raise ConfigurationError("count must be nonnegative")
    Z = np.zeros((n_buckets, n_types), dtype=np.int64)
    Z[0, 0] = int(count)
    return Z


class PopulationState:
    """Counts of active individuals by (age bucket, type) for one replicate.

    The state is owned by the replicate that advances it. ``advance`` never
    modifies ``counts`` in place, it returns the state of the next step.
    """

    def __init__(self, counts):
        Z = np.array(counts, dtype=np.int64)
        if Z.ndim != 2:
            raise ConfigurationError("population state must be a 2D (ages, types) array")
        if np.any(Z < 0):
            raise ConfigurationError("population counts must be nonnegative")
        self.counts = Z

    @property
    def n_buckets(self):
        return self.counts.shape[0]

    @property
    def n_types(self):
        return self.counts.shape[1]

    @property
    def active(self):
        return int(self.counts.sum())

    @property
    def by_age(self):
        return self.counts.sum(axis=1)

    @property
    def by_type(self):
        return self.counts.sum(axis=0)

    def reproduce(self, kernel, step, step_size, litter, rng):
        """Newborns by type created during ``step``.

        Each (age, type) bucket with n people has Poisson(n * mu * h) reproduction
        events; the litter distribution turns events into newborns.
        """
        expected = self.counts * kernel.at_step(step) * step_size
        events = rng.poisson(expected)
        return litter.sample(events.sum(axis=0), rng)

    def survive_and_age(self, survival, rng):
        """Survivors shifted one age bucket up; whoever would pass bucket K is removed."""
        p = survival.step_probabilities[:, np.newaxis]
        survivors = rng.binomial(self.counts, np.broadcast_to(p, self.counts.shape))
        aged = np.zeros_like(self.counts)
        aged[1:] = survivors[:-1]
        return aged

    def advance(self, kernel, survival, litter, immigration, step, step_size, rng):
        """Move one step forward.

        Args:
            kernel: ReproductionKernel
            survival: SurvivalModel
            litter: LitterDistribution
            immigration: ImmigrationProcess or None
            step (int): calendar step t of the current state
            step_size (float): h
            rng: numpy Generator of this replicate
        Returns:
            (next_state, newborns_by_type, immigrants_by_type)
        """
        newborns = self.reproduce(kernel, step, step_size, litter, rng)
        nxt = self.survive_and_age(survival, rng)
        nxt[0] += newborns

        if immigration is None:
            immigrants = np.zeros(self.n_types, dtype=np.int64)
        else:
            arrivals = immigration.sample(step, rng)
            nxt += arrivals
            immigrants = arrivals.sum(axis=0)

        return PopulationState(nxt), newborns, immigrants

    def __repr__(self):
        return f"PopulationState(active={self.active}, shape={self.counts.shape})"
