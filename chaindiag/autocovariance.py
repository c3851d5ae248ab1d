"""Autocovariance of a single chain of draws.

Two interchangeable backends are provided. :class:`FFTAutocovariance` runs on
the numeric module chosen by :func:`chaindiag.backends.get_xp` (NumPy or
``jax.numpy``) and scales to chains with millions of draws.
:class:`DirectAutocovariance` evaluates the O(L^2) definition and serves as a
reference for small chains. Both return the biased (divide by ``L``) linear
autocovariance at lags ``0..L-1`` as a float64 NumPy array.

The estimators only rely on the call signature ``backend(samples) -> array``,
so any callable with that shape can be passed as ``backend=``.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from chaindiag.backends import get_xp
from chaindiag.config import CONFIG
from chaindiag.exceptions import DataError

logger = logging.getLogger(__name__)

AutocovarianceBackend = Callable[[np.ndarray], np.ndarray]


def _as_samples(samples) -> np.ndarray:
    x = np.asarray(samples, dtype=np.float64).reshape(-1)
    if x.size == 0:
        raise DataError("cannot compute the autocovariance of an empty sequence")
    return x


def _fft_size(n: int) -> int:
    """Smallest power of two that is at least ``2 * n``."""
    size = 1
    while size < 2 * n:
        size *= 2
    return size


class FFTAutocovariance:
    """FFT-based autocovariance on a NumPy-compatible array module.

    Args:
        xp: ``numpy`` or ``jax.numpy``.
        backend_name: Name reported by :func:`get_xp`, used in logs and repr.
    """

    def __init__(self, xp=np, backend_name: str = "numpy"):
        self.xp = xp
        self.backend_name = backend_name

    def __call__(self, samples) -> np.ndarray:
        x = _as_samples(samples)
        n = x.size
        if n == 1:
            return np.zeros(1)
        xp = self.xp
        centered = xp.asarray(x - x.mean())
        m = _fft_size(n)
        freq = xp.fft.rfft(centered, n=m)
        # Zero padding to >= 2n removes the circular wrap-around terms.
        acov = xp.fft.irfft(freq * xp.conj(freq), n=m)[:n] / n
        return np.asarray(acov, dtype=np.float64)

    def __repr__(self):
        return f"FFTAutocovariance(backend_name={self.backend_name!r})"


class DirectAutocovariance:
    """Autocovariance evaluated lag by lag from its definition."""

    backend_name = "direct"

    def __call__(self, samples) -> np.ndarray:
        x = _as_samples(samples)
        n = x.size
        centered = x - x.mean()
        acov = np.empty(n)
        for t in range(n):
            acov[t] = np.dot(centered[: n - t], centered[t:]) / n
        return acov

    def __repr__(self):
        return "DirectAutocovariance()"


def get_autocovariance_backend(
    method: Optional[str] = None,
    requested_backend: Optional[str] = None,
) -> AutocovarianceBackend:
    """Build an autocovariance backend from config-style names.

    Args:
        method: ``"fft"`` or ``"direct"``. Defaults to
            ``CONFIG.computation.autocovariance``.
        requested_backend: Array module request passed to :func:`get_xp` for
            the FFT method. Defaults to ``CONFIG.computation.backend``.

    Raises:
        ValueError: If ``method`` is not recognised.
    """
    if method is None:
        method = CONFIG.computation.autocovariance
    if method == "direct":
        return DirectAutocovariance()
    if method != "fft":
        raise ValueError(f"Invalid autocovariance method '{method}'. Must be 'fft' or 'direct'.")
    if requested_backend is None:
        requested_backend = CONFIG.computation.backend
    xp, backend_name, device_name = get_xp(requested_backend)
    logger.debug("FFT autocovariance on %s (%s)", backend_name, device_name)
    return FFTAutocovariance(xp, backend_name)


def autocovariance(samples, backend: Optional[AutocovarianceBackend] = None) -> np.ndarray:
    """Return the biased autocovariance of ``samples`` at every lag.

    Element ``t`` is ``sum((x[i] - mean) * (x[i + t] - mean)) / L`` over the
    ``L - t`` overlapping pairs, so element 0 is the biased variance. A single
    draw gives ``[0.0]``.

    Raises:
        DataError: If ``samples`` is empty.
    """
    if backend is None:
        backend = get_autocovariance_backend()
    return backend(samples)


def autocovariance_direct(samples) -> np.ndarray:
    """O(L^2) reference version of :func:`autocovariance`."""
    return DirectAutocovariance()(samples)


__all__ = [
    "AutocovarianceBackend",
    "FFTAutocovariance",
    "DirectAutocovariance",
    "get_autocovariance_backend",
    "autocovariance",
    "autocovariance_direct",
]
