# src/gbp_forecast/simulate/rng.py
"""Seeding for replicate-level random streams.

Each replicate gets its own ``numpy.random.Generator`` spawned from one master
``SeedSequence``, so

  - replicates are statistically independent,
  - replicate ``i`` only depends on ``(seed, i)``, so the run is reproducible
    no matter how replicates are split between workers.
"""

from typing import List, Union

import numpy as np

SeedLike = Union[None, int, np.random.SeedSequence]


def master_seed_sequence(seed: SeedLike = None) -> np.random.SeedSequence:
    """Wrap ``seed`` in a SeedSequence (fresh OS entropy when ``seed`` is None)."""
    if isinstance(seed, np.random.SeedSequence):
        # fresh copy, spawning mutates the children counter
        return np.random.SeedSequence(seed.entropy, spawn_key=seed.spawn_key, pool_size=seed.pool_size)
    if seed is not None and int(seed) < 0:
        raise ValueError("seed must be a non-negative integer")
    return np.random.SeedSequence(seed)


def spawn_replicate_seeds(seed: SeedLike, n_replicates: int) -> List[np.random.SeedSequence]:
    """Spawn one child SeedSequence per replicate."""
    if n_replicates < 1:
        raise ValueError("n_replicates must be >= 1")
    return master_seed_sequence(seed).spawn(int(n_replicates))


def replicate_rng(child: np.random.SeedSequence) -> np.random.Generator:
    """Build the generator a replicate draws all of its randomness from."""
    return np.random.Generator(np.random.PCG64(child))

