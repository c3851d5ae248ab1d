"""Per-parameter summary table."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from chaindiag.autocovariance import AutocovarianceBackend, get_autocovariance_backend
from chaindiag.config import CONFIG
from chaindiag.diagnostics import effective_sample_size, split_rhat
from chaindiag.exceptions import DataError, NumericalError
from chaindiag.simulation import SimulationResult

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["mean", "sd", "n_eff", "Rhat", "converged"]


def _safe(func, sim, param, name, **kwargs) -> float:
    """Evaluate a diagnostic, reporting NaN when it is undefined."""
    try:
        return func(sim, param, **kwargs)
    except (DataError, NumericalError) as exc:
        logger.warning("%s undefined for %s: %s", func.__name__, name, exc)
        return float("nan")


def summarize(
    sim: SimulationResult,
    params: Optional[Sequence[Union[int, str]]] = None,
    backend: Optional[AutocovarianceBackend] = None,
    rhat_threshold: Optional[float] = None,
    min_ess: Optional[float] = None,
) -> pd.DataFrame:
    """Mean, standard deviation, ESS and split R-hat for each parameter.

    Args:
        sim: Simulation results.
        params: Parameter names or indices; defaults to all parameters.
        backend: Autocovariance backend; defaults to the configured one.
        rhat_threshold: Largest acceptable split R-hat. Defaults to
            ``CONFIG.diagnostics.rhat_threshold``.
        min_ess: Smallest acceptable ESS. Defaults to
            ``CONFIG.diagnostics.min_ess``.

    Returns:
        DataFrame indexed by parameter name with columns ``mean``, ``sd``,
        ``n_eff``, ``Rhat`` and ``converged``. A diagnostic that is undefined
        for a parameter (e.g. constant draws) is reported as NaN and the
        parameter is not marked converged.
    """
    if rhat_threshold is None:
        rhat_threshold = CONFIG.diagnostics.rhat_threshold
    if min_ess is None:
        min_ess = CONFIG.diagnostics.min_ess
    if backend is None:
        backend = get_autocovariance_backend()
    if params is None:
        params = range(sim.num_params())

    rows = {}
    for p in params:
        idx = sim.param_index(p)
        name = sim.param_name(idx)
        try:
            draws = np.concatenate([sim.kept_samples(k, idx) for k in range(sim.num_chains())])
        except DataError as exc:
            logger.warning("draws of %s unavailable: %s", name, exc)
            draws = np.empty(0)
        n_eff = _safe(effective_sample_size, sim, idx, name, backend=backend)
        rhat = _safe(split_rhat, sim, idx, name)
        converged = bool(rhat < rhat_threshold and n_eff > min_ess)
        if not rhat < rhat_threshold:
            logger.warning("%s: split R-hat %.3f is not below %.3f", name, rhat, rhat_threshold)
        if not n_eff > min_ess:
            logger.warning("%s: effective sample size %.1f is not above %.1f", name, n_eff, min_ess)
        rows[name] = {
            "mean": float(np.mean(draws)) if draws.size else float("nan"),
            "sd": float(np.std(draws, ddof=1)) if draws.size > 1 else float("nan"),
            "n_eff": n_eff,
            "Rhat": rhat,
            "converged": converged,
        }

    table = pd.DataFrame.from_dict(rows, orient="index", columns=SUMMARY_COLUMNS)
    logger.info(
        "Summarized %d parameters; %d not converged",
        len(table), int((~table["converged"].astype(bool)).sum()),
    )
    return table


__all__ = ["summarize", "SUMMARY_COLUMNS"]
