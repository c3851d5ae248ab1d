"""Per-chain summaries: kept draws, mean and autocovariance."""

from __future__ import annotations

from typing import Optional

import numpy as np

from chaindiag.autocovariance import AutocovarianceBackend, autocovariance
from chaindiag.simulation import SimulationSource


def kept_samples(sim: SimulationSource, chain: int, param: int) -> np.ndarray:
    """Post-warmup draws of ``param`` in ``chain``.

    Raises:
        IndexError: If ``chain`` or ``param`` is out of range.
        DataError: If the chain has no post-warmup draws.
    """
    return sim.kept_samples(chain, param)


def chain_mean(sim: SimulationSource, chain: int, param: int) -> float:
    """Mean of the post-warmup draws of ``param`` in ``chain``."""
    return float(np.mean(sim.kept_samples(chain, param)))


def chain_autocovariance(
    sim: SimulationSource,
    chain: int,
    param: int,
    backend: Optional[AutocovarianceBackend] = None,
) -> np.ndarray:
    """Autocovariance of the post-warmup draws of ``param`` in ``chain``."""
    return autocovariance(sim.kept_samples(chain, param), backend=backend)


__all__ = ["kept_samples", "chain_mean", "chain_autocovariance"]
