# src/gbp_forecast/simulate/engine.py
"""
Monte Carlo simulation of a general (Crump-Mode-Jagers) branching process.

Every replicate starts from the same initial population and, step by step,

  1. draws reproduction events for every (age, type) bucket and turns them into
     newborns at age bucket 0,
  2. lets every bucket survive with its one-step survival probability and ages
     the survivors by one bucket (nobody is kept past bucket K),
  3. adds immigrants at the age buckets drawn by the immigration process.

Replicates are independent: each one draws from its own Generator spawned from
a master SeedSequence, so a replicate's trajectory only depends on the seed
and its index, and replicates can be computed in worker processes.

Output matrices have one row per replicate and one column per step 0..T.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import BreakdownMemoryError, ConfigurationError
from .population import PopulationState, as_population
from .rng import SeedLike, master_seed_sequence, replicate_rng, spawn_replicate_seeds

# Start logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationOptions:
    keep_breakdown: bool = False
    seed: SeedLike = None
    n_workers: int = 1
    max_breakdown_bytes: int = 2 ** 31


@dataclass(frozen=True)
class SimulationSummary:
    """Active and total cases, shape (replicates, steps + 1)."""

    active_cases: np.ndarray
    total_cases: np.ndarray
    types: Tuple[str, ...]
    step_size: float
    seed_entropy: Optional[int] = None

    @property
    def n_replicates(self):
        return self.active_cases.shape[0]

    @property
    def n_steps(self):
        return self.active_cases.shape[1] - 1

    @property
    def times(self):
        """Calendar time of every column."""
        return np.arange(self.n_steps + 1) * self.step_size


@dataclass(frozen=True)
class SimulationBreakdown(SimulationSummary):
    """Summary plus age- and type-resolved counts.

    active_cases_by_type: (replicates, steps + 1, types)
    active_cases_by_age: (replicates, steps + 1, age buckets)
    total_cases_by_type: (replicates, steps + 1, types)
    """

    active_cases_by_type: Optional[np.ndarray] = None
    active_cases_by_age: Optional[np.ndarray] = None
    total_cases_by_type: Optional[np.ndarray] = None


def _type_labels(types):
    if isinstance(types, str):
        raise ConfigurationError(
            f"types must be a count or a sequence of labels, got the string {types!r}; use ({types!r},)"
        )
    if isinstance(types, (int, np.integer)):
        if types < 1:
            raise ConfigurationError("there must be at least one type")
        return tuple(f"type_{u}" for u in range(int(types)))
    labels = tuple(str(t) for t in types)
    if not labels:
        raise ConfigurationError("there must be at least one type")
    if len(set(labels)) != len(labels):
        raise ConfigurationError(f"type labels must be unique: {labels}")
    return labels


def validate_inputs(
    replicate_count,
    step_count,
    step_size,
    survival_model,
    litter_distribution,
    types,
    initial_population,
    reproduction_kernel,
    immigration_process,
):
    """Check that the model pieces fit together.

    Returns:
        (type labels, initial population as an int64 (K+1, U) array,
         immigration process resolved to U types or None)
    Raises:
        ConfigurationError
    """
    if int(replicate_count) != replicate_count or replicate_count < 1:
        raise ConfigurationError("replicate_count must be an integer >= 1")
    if int(step_count) != step_count or step_count < 1:
        raise ConfigurationError("step_count must be an integer >= 1")
    if not step_size > 0:
        raise ConfigurationError("step_size must be > 0")

    labels = _type_labels(types)
    n_types = len(labels)
    n_buckets = survival_model.n_buckets

    if reproduction_kernel.n_buckets != n_buckets:
        raise ConfigurationError(
            f"kernel has {reproduction_kernel.n_buckets} age buckets, survival curve has {n_buckets}"
        )
    if reproduction_kernel.n_types != n_types:
        raise ConfigurationError(
            f"kernel has {reproduction_kernel.n_types} types, expected {n_types}"
        )
    if reproduction_kernel.n_steps < step_count:
        raise ConfigurationError(
            f"kernel covers {reproduction_kernel.n_steps} steps, {step_count} needed"
        )
    if not np.isclose(reproduction_kernel.step_size, step_size):
        raise ConfigurationError(
            f"kernel was built for step size {reproduction_kernel.step_size}, simulating with {step_size}"
        )

    litter_distribution.check_types(n_types)

    if immigration_process is not None:
        if immigration_process.n_buckets != n_buckets:
            raise ConfigurationError(
                f"immigration age profile has {immigration_process.n_buckets} buckets, expected {n_buckets}"
            )
        immigration_process = immigration_process.for_types(n_types)
        if immigration_process.n_steps < step_count:
            raise ConfigurationError(
                f"immigration covers {immigration_process.n_steps} steps, {step_count} needed"
            )

    Z0 = as_population(initial_population, n_buckets, n_types)
    return labels, Z0, immigration_process


def breakdown_bytes(replicate_count, step_count, n_buckets, n_types):
    """Bytes needed for the age/type breakdown matrices (int64)."""
    per_step = n_buckets + 2 * n_types
    return int(replicate_count) * (int(step_count) + 1) * per_step * np.dtype(np.int64).itemsize


def run_replicate(
    rng,
    step_count,
    step_size,
    survival_model,
    litter_distribution,
    initial_population,
    reproduction_kernel,
    immigration_process,
    keep_breakdown=False,
):
    """Simulate one sample path.

    Returns:
        dict with keys "active" and "total" (arrays of length step_count + 1) and,
        when keep_breakdown is set, "active_by_type", "active_by_age" and
        "total_by_type".
    """
    n_buckets, n_types = initial_population.shape
    state = PopulationState(initial_population)

    active = np.zeros(step_count + 1, dtype=np.int64)
    total = np.zeros(step_count + 1, dtype=np.int64)
    active[0] = state.active
    total[0] = state.active

    if keep_breakdown:
        active_by_type = np.zeros((step_count + 1, n_types), dtype=np.int64)
        active_by_age = np.zeros((step_count + 1, n_buckets), dtype=np.int64)
        total_by_type = np.zeros((step_count + 1, n_types), dtype=np.int64)
        active_by_type[0] = state.by_type
        active_by_age[0] = state.by_age
        total_by_type[0] = state.by_type

    for t in range(step_count):
        state, newborns, immigrants = state.advance(
            reproduction_kernel,
            survival_model,
            litter_distribution,
            immigration_process,
            t,
            step_size,
            rng,
        )
        created = newborns + immigrants
        active[t + 1] = state.active
        total[t + 1] = total[t] + int(created.sum())

        if keep_breakdown:
            active_by_type[t + 1] = state.by_type
            active_by_age[t + 1] = state.by_age
            total_by_type[t + 1] = total_by_type[t] + created

    out = {"active": active, "total": total}
    if keep_breakdown:
        out["active_by_type"] = active_by_type
        out["active_by_age"] = active_by_age
        out["total_by_type"] = total_by_type
    return out


def _run_chunk(seeds, **model):
    """Run a block of replicates and stack their outputs. Used by worker processes."""
    rows = [run_replicate(replicate_rng(child), **model) for child in seeds]
    stacked = {key: np.stack([r[key] for r in rows]) for key in rows[0]}
    logger.debug("Finished chunk of %d replicates", len(seeds))
    return stacked


def _allocate(shape):
    try:
        return np.zeros(shape, dtype=np.int64)
    except MemoryError as exc:
        requested = int(np.prod(shape)) * np.dtype(np.int64).itemsize
        raise BreakdownMemoryError(requested) from exc


def simulate(
    replicate_count: int,
    step_count: int,
    step_size: float,
    survival_model,
    litter_distribution,
    types: Union[int, Sequence[str]],
    initial_population,
    reproduction_kernel,
    immigration_process=None,
    options: Optional[SimulationOptions] = None,
):
    """Simulate ``replicate_count`` independent sample paths of ``step_count`` steps.

    Args:
        replicate_count (int): number of replicates, >= 1
        step_count (int): number of steps T, >= 1
        step_size (float): h, > 0
        survival_model: SurvivalModel with K+1 age buckets
        litter_distribution: LitterDistribution
        types: number of types or a sequence of type labels
        initial_population: (K+1, U) nonnegative integer counts (1D allowed for one type)
        reproduction_kernel: ReproductionKernel of shape (K+1, U, >= T)
        immigration_process: ImmigrationProcess covering >= T steps, or None
        options: SimulationOptions
    Returns:
        SimulationSummary, or SimulationBreakdown when options.keep_breakdown is set
    Raises:
        ConfigurationError: inconsistent inputs, nothing is simulated
        BreakdownMemoryError: the breakdown matrices would not fit
    """
    if options is None:
        options = SimulationOptions()
    if options.n_workers < 1:
        raise ConfigurationError("n_workers must be >= 1")

    labels, Z0, immigration_process = validate_inputs(
        replicate_count,
        step_count,
        step_size,
        survival_model,
        litter_distribution,
        types,
        initial_population,
        reproduction_kernel,
        immigration_process,
    )
    replicate_count = int(replicate_count)
    step_count = int(step_count)
    n_buckets, n_types = Z0.shape

    if options.keep_breakdown:
        requested = breakdown_bytes(replicate_count, step_count, n_buckets, n_types)
        if requested > options.max_breakdown_bytes:
            raise BreakdownMemoryError(requested, options.max_breakdown_bytes)

    master = master_seed_sequence(options.seed)
    seeds = spawn_replicate_seeds(master, replicate_count)

    logger.info(
        "Simulating %d replicates x %d steps (h=%g, %d age buckets, %d types, workers=%d)",
        replicate_count, step_count, step_size, n_buckets, n_types, options.n_workers,
    )

    shape = (replicate_count, step_count + 1)
    out = {"active": np.zeros(shape, dtype=np.int64), "total": np.zeros(shape, dtype=np.int64)}
    if options.keep_breakdown:
        out["active_by_type"] = _allocate(shape + (n_types,))
        out["active_by_age"] = _allocate(shape + (n_buckets,))
        out["total_by_type"] = _allocate(shape + (n_types,))

    run_chunk = partial(
        _run_chunk,
        step_count=step_count,
        step_size=float(step_size),
        survival_model=survival_model,
        litter_distribution=litter_distribution,
        initial_population=Z0,
        reproduction_kernel=reproduction_kernel,
        immigration_process=immigration_process,
        keep_breakdown=options.keep_breakdown,
    )

    n_chunks = min(replicate_count, options.n_workers * 4)
    bounds = np.linspace(0, replicate_count, n_chunks + 1).astype(int)
    chunks = [(lo, hi) for lo, hi in zip(bounds[:-1], bounds[1:]) if hi > lo]

    if options.n_workers == 1:
        results = (run_chunk(seeds[lo:hi]) for lo, hi in chunks)
        _collect(out, chunks, results)
    else:
        with ProcessPoolExecutor(max_workers=options.n_workers) as executor:
            results = executor.map(run_chunk, [seeds[lo:hi] for lo, hi in chunks])
            _collect(out, chunks, results)

    logger.info(
        "Done: mean active cases at final step %.2f, mean total cases %.2f",
        float(out["active"][:, -1].mean()), float(out["total"][:, -1].mean()),
    )

    entropy = master.entropy if isinstance(master.entropy, int) else None
    if not options.keep_breakdown:
        return SimulationSummary(
            active_cases=out["active"],
            total_cases=out["total"],
            types=labels,
            step_size=float(step_size),
            seed_entropy=entropy,
        )
    return SimulationBreakdown(
        active_cases=out["active"],
        total_cases=out["total"],
        types=labels,
        step_size=float(step_size),
        seed_entropy=entropy,
        active_cases_by_type=out["active_by_type"],
        active_cases_by_age=out["active_by_age"],
        total_cases_by_type=out["total_by_type"],
    )


def _collect(out, chunks, results):
    # results come back in chunk order
    for (lo, hi), block in zip(chunks, results):
        for key, values in block.items():
            out[key][lo:hi] = values
