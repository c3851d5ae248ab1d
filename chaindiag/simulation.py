"""Simulation results consumed by the diagnostics.

:class:`SimulationResult` is the typed form of the ``sim`` record written by
Stan interfaces: one list of per-parameter draw vectors for each chain,
together with the number of saved draws (``n_save``) and the number of those
that are warmup (``warmup2``, already adjusted for thinning). The record is
validated once, when it is constructed; afterwards the diagnostics only use
the :class:`SimulationSource` methods.
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Protocol, Sequence

import numpy as np
import pandas as pd

from chaindiag.exceptions import DataError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("chains", "n_flatnames", "n_save", "warmup2", "samples")


class SimulationSource(Protocol):
    """Narrow interface the estimators read simulation results through."""

    def num_chains(self) -> int: ...

    def num_params(self) -> int: ...

    def kept_counts(self) -> List[int]: ...

    def kept_samples(self, chain: int, param: int) -> np.ndarray: ...


def _as_count(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        # Integral-valued floats are accepted, as R stores counts as doubles.
        if isinstance(value, numbers.Real) and float(value).is_integer():
            return int(value)
        raise DataError(f"wrong type of {name} in sim; found {type(value).__name__}, but an integer is needed")
    return int(value)


def validate_chain_idx(sim: SimulationSource, chain: int) -> None:
    """Raise ``IndexError`` unless ``0 <= chain < sim.num_chains()``."""
    m = sim.num_chains()
    if chain < 0 or chain >= m:
        raise IndexError(f"chain must be less than number of chains; num chains={m}; chain={chain}")


def validate_param_idx(sim: SimulationSource, param: int) -> None:
    """Raise ``IndexError`` unless ``0 <= param < sim.num_params()``."""
    n = sim.num_params()
    if param < 0 or param >= n:
        raise IndexError(f"parameter index must be less than number of params ({n}); found n={param}")


@dataclass(frozen=True)
class SimulationResult:
    """Saved draws of several chains, validated at construction.

    Args:
        chains: Declared number of chains.
        n_flatnames: Number of scalar parameters.
        n_save: Saved draws per chain, warmup included.
        warmup2: Warmup draws per chain among the saved ones.
        samples: ``samples[k][n]`` holds the saved draws of parameter ``n`` in
            chain ``k``.
        param_names: Optional names of the scalar parameters.
        permutation: Optional per-chain permutations of the kept draws, used
            by :meth:`to_frame`.

    Raises:
        DataError: If the record is inconsistent.
    """

    chains: int
    n_flatnames: int
    n_save: Sequence[int]
    warmup2: Sequence[int]
    samples: Sequence[Sequence[np.ndarray]]
    param_names: Optional[Sequence[str]] = None
    permutation: Optional[Sequence[Sequence[int]]] = field(default=None, repr=False)

    def __post_init__(self):
        chains = _as_count(self.chains, "chains")
        n_flatnames = _as_count(self.n_flatnames, "n_flatnames")
        if chains < 1:
            raise DataError(f"the number of chains must be positive; found {chains}")
        if n_flatnames < 0:
            raise DataError(f"n_flatnames must be non-negative; found {n_flatnames}")
        if not isinstance(self.samples, (list, tuple)):
            raise DataError("sim$samples is not a list")
        if len(self.samples) != chains:
            raise DataError(
                "the number of chains specified is different from the one found in samples "
                f"({chains} != {len(self.samples)})"
            )

        n_save = [_as_count(v, "n_save") for v in self.n_save]
        warmup2 = [_as_count(v, "warmup2") for v in self.warmup2]
        if len(n_save) != chains:
            raise DataError(f"n_save has {len(n_save)} entries for {chains} chains")
        if len(warmup2) != chains:
            raise DataError(f"warmup2 has {len(warmup2)} entries for {chains} chains")

        samples = []
        for k in range(chains):
            if n_save[k] < 0:
                raise DataError(f"n_save[{k}] must be non-negative; found {n_save[k]}")
            if warmup2[k] < 0:
                raise DataError(f"warmup2[{k}] must be non-negative; found {warmup2[k]}")
            if warmup2[k] > n_save[k]:
                raise DataError(f"warmup2[{k}]={warmup2[k]} exceeds n_save[{k}]={n_save[k]}")
            chain_samples = self.samples[k]
            if len(chain_samples) != n_flatnames:
                raise DataError(
                    f"chain {k} has {len(chain_samples)} parameters, expected n_flatnames={n_flatnames}"
                )
            arrays = []
            for n, draws in enumerate(chain_samples):
                arr = np.array(draws, dtype=np.float64).reshape(-1)
                if arr.size < n_save[k]:
                    raise DataError(
                        f"chain {k} parameter {n} has {arr.size} draws but n_save[{k}]={n_save[k]}"
                    )
                arr.setflags(write=False)
                arrays.append(arr)
            samples.append(tuple(arrays))

        if self.param_names is not None and len(self.param_names) != n_flatnames:
            raise DataError(
                f"param_names has {len(self.param_names)} entries, expected n_flatnames={n_flatnames}"
            )

        object.__setattr__(self, "chains", chains)
        object.__setattr__(self, "n_flatnames", n_flatnames)
        object.__setattr__(self, "n_save", tuple(n_save))
        object.__setattr__(self, "warmup2", tuple(warmup2))
        object.__setattr__(self, "samples", tuple(samples))
        if self.param_names is not None:
            object.__setattr__(self, "param_names", tuple(str(p) for p in self.param_names))
        if self.permutation is not None:
            self._validate_permutation()

    def _validate_permutation(self):
        if len(self.permutation) != self.chains:
            raise DataError(f"permutation has {len(self.permutation)} entries for {self.chains} chains")
        perms = []
        for k, perm in enumerate(self.permutation):
            perm = np.asarray(perm, dtype=np.int64)
            kept = self.n_save[k] - self.warmup2[k]
            if perm.shape != (kept,) or not np.array_equal(np.sort(perm), np.arange(kept)):
                raise DataError(f"permutation[{k}] is not a permutation of {kept} kept draws")
            perms.append(perm)
        object.__setattr__(self, "permutation", tuple(perms))

    # ----------------------------------------------------------------- builders

    @classmethod
    def from_dict(cls, sim: Mapping) -> "SimulationResult":
        """Build from an rstan-style ``sim`` mapping.

        ``fnames_oi`` is accepted as an alias of ``param_names``.
        """
        if not isinstance(sim, Mapping):
            raise DataError(f"the simulation results (sim) must be a mapping; found {type(sim).__name__}")
        for name in REQUIRED_FIELDS:
            if name not in sim:
                raise DataError(f"the simulation results (sim) does not contain {name}")
        samples = sim["samples"]
        if not isinstance(samples, (list, tuple)):
            raise DataError("sim$samples is not a list")
        # rstan stores each chain as a named list of parameters
        samples = [list(c.values()) if isinstance(c, Mapping) else list(c) for c in samples]
        param_names = sim.get("param_names", sim.get("fnames_oi"))
        return cls(
            chains=sim["chains"],
            n_flatnames=sim["n_flatnames"],
            n_save=list(np.atleast_1d(sim["n_save"])),
            warmup2=list(np.atleast_1d(sim["warmup2"])),
            samples=samples,
            param_names=param_names,
            permutation=sim.get("permutation"),
        )

    @classmethod
    def from_draws(
        cls,
        draws,
        warmup: int = 0,
        param_names: Optional[Sequence[str]] = None,
    ) -> "SimulationResult":
        """Build from an array of shape ``(n_iter, n_chains, n_params)``.

        A 2-D array ``(n_iter, n_chains)`` is treated as a single parameter.
        The first ``warmup`` iterations of every chain are warmup.
        """
        arr = np.asarray(draws, dtype=np.float64)
        if arr.ndim == 2:
            arr = arr[:, :, np.newaxis]
        if arr.ndim != 3:
            raise DataError(f"draws must have shape (n_iter, n_chains[, n_params]); found {arr.shape}")
        n_iter, n_chains, n_params = arr.shape
        samples = [[arr[:, k, n] for n in range(n_params)] for k in range(n_chains)]
        return cls(
            chains=n_chains,
            n_flatnames=n_params,
            n_save=[n_iter] * n_chains,
            warmup2=[warmup] * n_chains,
            samples=samples,
            param_names=param_names,
        )

    @classmethod
    def from_emcee(
        cls,
        sampler,
        burnin: int = 0,
        thin_by: int = 1,
        param_names: Optional[Sequence[str]] = None,
    ) -> "SimulationResult":
        """Build from an ``emcee.EnsembleSampler``, one chain per walker.

        Args:
            sampler: Sampler after ``run_mcmc``.
            burnin: Number of initial steps treated as warmup.
            thin_by: Thinning factor applied to the stored chain.
            param_names: Optional parameter names.
        """
        chain = sampler.get_chain(thin=thin_by)
        warmup = -(-burnin // thin_by)
        logger.info(
            "Read emcee chain with %d steps, %d walkers and %d parameters (warmup=%d)",
            *chain.shape, warmup,
        )
        return cls.from_draws(chain, warmup=min(warmup, chain.shape[0]), param_names=param_names)

    # ---------------------------------------------------------------- interface

    def num_chains(self) -> int:
        return self.chains

    def num_params(self) -> int:
        return self.n_flatnames

    def kept_counts(self) -> List[int]:
        """Number of post-warmup draws in each chain."""
        return [s - w for s, w in zip(self.n_save, self.warmup2)]

    def kept_samples(self, chain: int, param: int) -> np.ndarray:
        """Post-warmup draws of ``param`` in ``chain``.

        Raises:
            IndexError: If either index is out of range.
            DataError: If the chain has no post-warmup draws.
        """
        validate_chain_idx(self, chain)
        validate_param_idx(self, param)
        kept = self.samples[chain][param][self.warmup2[chain]:self.n_save[chain]]
        if kept.size == 0:
            raise DataError(
                f"chain {chain} has no draws after warmup "
                f"(warmup2={self.warmup2[chain]}, n_save={self.n_save[chain]})"
            )
        return kept

    def param_name(self, param: int) -> str:
        validate_param_idx(self, param)
        if self.param_names is None:
            return f"param[{param}]"
        return self.param_names[param]

    def param_index(self, name_or_index) -> int:
        """Resolve a parameter name or index to a validated index."""
        if isinstance(name_or_index, str):
            if self.param_names is not None and name_or_index in self.param_names:
                return self.param_names.index(name_or_index)
            try:
                name_or_index = int(name_or_index)
            except ValueError:
                raise KeyError(f"unknown parameter {name_or_index!r}") from None
        validate_param_idx(self, name_or_index)
        return int(name_or_index)

    # ------------------------------------------------------------------ export

    def to_frame(self, permuted: bool = False, seed: Optional[int] = None) -> pd.DataFrame:
        """Kept draws as a long table with ``chain`` and ``draw`` columns.

        Args:
            permuted: Reorder each chain's kept draws, with ``permutation``
                when the record has one, else with a permutation drawn from
                ``numpy.random.default_rng([seed, chain])``.
            seed: Seed for generated permutations.
        """
        names = [self.param_name(n) for n in range(self.n_flatnames)]
        frames = []
        for k in range(self.chains):
            kept = self.n_save[k] - self.warmup2[k]
            columns = {"chain": np.full(kept, k), "draw": np.arange(kept)}
            order = np.arange(kept)
            if permuted:
                if self.permutation is not None:
                    order = self.permutation[k]
                else:
                    rng = np.random.default_rng([0 if seed is None else seed, k])
                    order = rng.permutation(kept)
            for n, name in enumerate(names):
                columns[name] = self.samples[k][n][self.warmup2[k]:self.n_save[k]][order]
            frames.append(pd.DataFrame(columns))
        return pd.concat(frames, ignore_index=True)


__all__ = [
    "SimulationSource",
    "SimulationResult",
    "validate_chain_idx",
    "validate_param_idx",
    "REQUIRED_FIELDS",
]
