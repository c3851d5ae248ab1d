"""Effective sample size and split potential scale reduction.

Both estimators follow the definitions in BDA3 (pp. 284-287) as implemented
by Stan. Every chain contributes its post-warmup draws; when chains have
different lengths, the shortest one sets the number of draws per chain.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from chaindiag.autocovariance import (
    AutocovarianceBackend,
    autocovariance,
    get_autocovariance_backend,
)
from chaindiag.exceptions import DataError, NumericalError
from chaindiag.simulation import SimulationSource, validate_param_idx

logger = logging.getLogger(__name__)


def _check_denominator(value: float, name: str) -> None:
    if value == 0 or not np.isfinite(value):
        raise NumericalError(f"{name} is {value}; the chains may be constant")


def _as_matrix(draws) -> np.ndarray:
    arr = np.asarray(draws, dtype=np.float64)
    if arr.ndim != 2:
        raise DataError(f"draws must be a 2-d array of shape (n_iter, n_chains); found shape {arr.shape}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise DataError(f"draws must contain at least one iteration and one chain; found shape {arr.shape}")
    return arr


def _chain_moments(
    kept: Sequence[np.ndarray],
    backend: Optional[AutocovarianceBackend],
) -> Tuple[List[np.ndarray], np.ndarray, np.ndarray]:
    """Autocovariances, means and bias-corrected variances of each chain.

    The variance of chain ``k`` is corrected with its own length ``n_k``.
    """
    if backend is None:
        backend = get_autocovariance_backend()
    acov = []
    chain_mean = []
    chain_var = []
    for k, samples in enumerate(kept):
        n_k = samples.size
        if n_k < 2:
            raise DataError(f"chain {k} has {n_k} kept draw; at least 2 are needed to estimate its variance")
        acov_k = autocovariance(samples, backend=backend)
        acov.append(acov_k)
        chain_mean.append(np.mean(samples))
        chain_var.append(acov_k[0] * n_k / (n_k - 1))
    # Constant draws such as 0.3 leave a rounding-level variance behind.
    if np.ptp(np.concatenate(kept)) == 0:
        raise NumericalError("var_plus is 0; every kept draw has the same value")
    return acov, np.asarray(chain_mean), np.asarray(chain_var)


def _var_plus(mean_var: float, chain_mean: np.ndarray, n_samples: int) -> float:
    """Marginal posterior variance estimate from within and between chains."""
    var_plus = mean_var * (n_samples - 1) / n_samples
    if chain_mean.size > 1:
        var_plus += np.var(chain_mean, ddof=1)
    _check_denominator(var_plus, "var_plus")
    return var_plus


def _rho_hat(acov: Sequence[np.ndarray], mean_var: float, var_plus: float, n_samples: int) -> np.ndarray:
    """Combined autocorrelation estimate at lags ``0..n_samples-1``."""
    mean_acov = np.mean([a[:n_samples] for a in acov], axis=0)
    return 1 - (mean_var - mean_acov) / var_plus


def _geyer_ess(acov: Sequence[np.ndarray], chain_mean: np.ndarray, chain_var: np.ndarray, n_samples: int) -> float:
    m = len(acov)
    mean_var = np.mean(chain_var)
    var_plus = _var_plus(mean_var, chain_mean, n_samples)
    rho = _rho_hat(acov, mean_var, var_plus, n_samples)

    rho_hat_t = np.zeros(n_samples)
    rho_hat_even = 1.0
    rho_hat_odd = rho[1]
    rho_hat_t[1] = rho_hat_odd

    # Geyer's initial positive sequence. Each pass evaluates the pair of lags
    # (t + 1, t + 2). The loop condition sees the pair from the previous pass;
    # the pair is committed to rho_hat_t only when its own sum is
    # non-negative, so the first negative pair stays zero and ends the scan.
    max_t = 1
    t = 1
    while t < n_samples - 2 and rho_hat_even + rho_hat_odd >= 0:
        rho_hat_even = rho[t + 1]
        rho_hat_odd = rho[t + 2]
        if rho_hat_even + rho_hat_odd >= 0:
            rho_hat_t[t + 1] = rho_hat_even
            rho_hat_t[t + 2] = rho_hat_odd
        max_t = t + 2
        t += 2

    # Geyer's initial monotone sequence: pair sums may not increase. An
    # offending pair is replaced by the mean of the pair before it.
    for t in range(3, max_t - 1, 2):
        if rho_hat_t[t + 1] + rho_hat_t[t + 2] > rho_hat_t[t - 1] + rho_hat_t[t]:
            rho_hat_t[t + 1] = (rho_hat_t[t - 1] + rho_hat_t[t]) / 2
            rho_hat_t[t + 2] = rho_hat_t[t + 1]

    denominator = 1 + 2 * np.sum(rho_hat_t)
    _check_denominator(denominator, "the autocorrelation sum 1 + 2 * sum(rho_hat)")
    ess = m * n_samples / denominator
    logger.debug("ESS=%g (chains=%d, n_samples=%d, max_t=%d)", ess, m, n_samples, max_t)
    return float(ess)


def effective_sample_size(
    sim: SimulationSource,
    param: int,
    backend: Optional[AutocovarianceBackend] = None,
) -> float:
    """Effective sample size of parameter ``param`` across all chains.

    Autocorrelations are combined across chains and truncated with Geyer's
    initial positive sequence, then smoothed with the initial monotone
    sequence. The number of draws per chain is the minimum number of kept
    draws over the chains; each chain's variance is still bias-corrected with
    its own number of kept draws.

    Args:
        sim: Simulation results.
        param: Parameter index starting from 0.
        backend: Autocovariance backend; defaults to the configured one.

    Returns:
        The effective sample size.

    Raises:
        IndexError: If ``param`` is out of range.
        DataError: If a chain has fewer than two kept draws.
        NumericalError: If the chains have zero variance.
    """
    validate_param_idx(sim, param)
    kept = [sim.kept_samples(k, param) for k in range(sim.num_chains())]
    n_samples = min(sim.kept_counts())
    acov, chain_mean, chain_var = _chain_moments(kept, backend)
    return _geyer_ess(acov, chain_mean, chain_var, n_samples)


def effective_sample_size_matrix(draws, backend: Optional[AutocovarianceBackend] = None) -> float:
    """Effective sample size of post-warmup draws of shape ``(n_iter, n_chains)``.

    Autocorrelations at lags 1, 2, ... are summed while they stay
    non-negative; the first negative value ends the sum and is left out.

    Raises:
        DataError: If there are fewer than two iterations.
        NumericalError: If the chains have zero variance.
    """
    arr = _as_matrix(draws)
    n_samples, m = arr.shape
    acov, chain_mean, chain_var = _chain_moments([arr[:, k] for k in range(m)], backend)
    mean_var = np.mean(chain_var)
    var_plus = _var_plus(mean_var, chain_mean, n_samples)
    rho = _rho_hat(acov, mean_var, var_plus, n_samples)

    rho_sum = 0.0
    for t in range(1, n_samples):
        if rho[t] < 0:
            break
        rho_sum += rho[t]
    ess = m * n_samples / (1 + 2 * rho_sum)
    return float(ess)


def _split_rhat(kept: Sequence[np.ndarray]) -> float:
    n_samples = min(x.size for x in kept)
    if n_samples % 2 == 1:
        n_samples -= 1
    half = n_samples // 2
    if half < 2:
        raise DataError(
            f"split R-hat needs at least 2 draws per half chain; found {half} "
            f"(minimum kept draws per chain: {min(x.size for x in kept)})"
        )

    split_chain_mean = []
    split_chain_var = []
    constant_halves = True
    for samples in kept:
        for split_chain in (samples[:half], samples[half:n_samples]):
            split_chain_mean.append(np.mean(split_chain))
            split_chain_var.append(np.var(split_chain, ddof=1))
            constant_halves = constant_halves and np.ptp(split_chain) == 0

    if constant_halves:
        raise NumericalError("the within-chain variance is 0; every half chain is constant")
    var_between = half * np.var(split_chain_mean, ddof=1)
    var_within = np.mean(split_chain_var)
    _check_denominator(var_within, "the within-chain variance")

    # [(n-1)*W/n + B/n]/W rewritten as (n-1 + B/W)/n
    srhat = np.sqrt((var_between / var_within + half - 1) / half)
    logger.debug("split R-hat=%g (B=%g, W=%g, n=%d)", srhat, var_between, var_within, n_samples)
    return float(srhat)


def split_rhat(sim: SimulationSource, param: int) -> float:
    """Split potential scale reduction (split R-hat) of parameter ``param``.

    Every chain is cut to the minimum number of kept draws (minus one when
    that is odd) and split into a first and a second half.

    Raises:
        IndexError: If ``param`` is out of range.
        DataError: If a half chain would hold fewer than two draws.
        NumericalError: If the within-chain variance is zero.
    """
    validate_param_idx(sim, param)
    kept = [sim.kept_samples(k, param) for k in range(sim.num_chains())]
    return _split_rhat(kept)


def split_rhat_matrix(draws) -> float:
    """Split R-hat of post-warmup draws of shape ``(n_iter, n_chains)``."""
    arr = _as_matrix(draws)
    return _split_rhat([arr[:, k] for k in range(arr.shape[1])])


def ess_and_split_rhat(
    sim: SimulationSource,
    param: int,
    backend: Optional[AutocovarianceBackend] = None,
) -> Tuple[float, float]:
    """Return ``(effective_sample_size, split_rhat)`` for ``param``."""
    return effective_sample_size(sim, param, backend=backend), split_rhat(sim, param)


__all__ = [
    "effective_sample_size",
    "effective_sample_size_matrix",
    "split_rhat",
    "split_rhat_matrix",
    "ess_and_split_rhat",
]
