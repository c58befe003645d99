# src/gbp_forecast/simulate/litter.py
import numpy as np

from .errors import ConfigurationError


def _check_probabilities(p, name):
    if np.any(p < 0):
        raise ConfigurationError(f"{name} has negative probabilities")
    if not np.isclose(p.sum(), 1.0):
        raise ConfigurationError(f"{name} must sum to 1, got {p.sum():.6g}")


class LitterDistribution:
    """Number (and type) of new infections produced by one reproduction event.

    Args:
        pmf: ``pmf[k]`` is the probability that one event infects k people
        type_transition: optional (U, U) matrix, row u gives the type
            probabilities of a newborn whose parent has type u.
            Defaults to the identity (offspring keep the parent's type).
    """

    def __init__(self, pmf, type_transition=None):
        H = np.array(pmf, dtype=float)
        if H.ndim != 1 or H.size == 0:
            raise ConfigurationError("litter pmf must be a non-empty 1D sequence")
        _check_probabilities(H, "litter pmf")
        H = H / H.sum()
        H.setflags(write=False)
        self._pmf = H
        self._sizes = np.arange(H.size, dtype=np.int64)

        if type_transition is None:
            self._transition = None
        else:
            P = np.array(type_transition, dtype=float)
            if P.ndim != 2 or P.shape[0] != P.shape[1]:
                raise ConfigurationError("type_transition must be a square matrix")
            for u in range(P.shape[0]):
                _check_probabilities(P[u], f"type_transition row {u}")
            P = P / P.sum(axis=1, keepdims=True)
            P.setflags(write=False)
            self._transition = P

    @classmethod
    def single(cls):
        """Every event produces exactly one new infection of the parent's type."""
        return cls([0.0, 1.0])

    @property
    def pmf(self):
        return self._pmf

    @property
    def type_transition(self):
        return self._transition

    @property
    def mean(self):
        """Expected number of people infected per event."""
        return float(np.dot(self._sizes, self._pmf))

    @property
    def is_degenerate(self):
        """True when every event gives exactly one offspring of the parent's type."""
        return self._transition is None and self._pmf.size > 1 and self._pmf[1] == 1.0

    def check_types(self, n_types):
        if self._transition is not None and self._transition.shape[0] != n_types:
            raise ConfigurationError(
                f"type_transition is {self._transition.shape[0]}x{self._transition.shape[0]}, "
                f"expected {n_types}x{n_types}"
            )

    def sample(self, events_by_type, rng):
        """Newborn counts by type given the number of events per parent type.

        Args:
            events_by_type: integer array (U,), events caused by parents of each type
            rng: numpy Generator
        Returns:
            newborns (nparray(U,), int64)
        """
        events = np.asarray(events_by_type, dtype=np.int64)
        if self.is_degenerate:
            return events.copy()

        # Litter sizes per parent type: sum of `events` iid draws from the pmf
        litters = np.zeros(events.size, dtype=np.int64)
        for u, n in enumerate(events):
            if n > 0:
                counts = rng.multinomial(n, self._pmf)
                litters[u] = int(np.dot(counts, self._sizes))

        if self._transition is None:
            return litters

        newborns = np.zeros(events.size, dtype=np.int64)
        for u, n in enumerate(litters):
            if n > 0:
                newborns += rng.multinomial(n, self._transition[u])
        return newborns

    def __repr__(self):
        return f"LitterDistribution(pmf={self._pmf.tolist()})"
