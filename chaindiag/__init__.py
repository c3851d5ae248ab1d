from .config import Config, load_config, CONFIG
from .exceptions import DataError, NumericalError
from .backends import get_xp, BackendNotAvailableError
from .autocovariance import (
    FFTAutocovariance,
    DirectAutocovariance,
    get_autocovariance_backend,
    autocovariance,
    autocovariance_direct,
)
from .simulation import SimulationResult, SimulationSource
from .chains import kept_samples, chain_mean, chain_autocovariance
from .diagnostics import (
    effective_sample_size,
    effective_sample_size_matrix,
    split_rhat,
    split_rhat_matrix,
    ess_and_split_rhat,
)
from .stan_csv import read_comments, read_stan_csv
from .summary import summarize

__version__ = "0.1.0"

__all__ = [
    "Config",
    "load_config",
    "CONFIG",
    "DataError",
    "NumericalError",
    "get_xp",
    "BackendNotAvailableError",
    "FFTAutocovariance",
    "DirectAutocovariance",
    "get_autocovariance_backend",
    "autocovariance",
    "autocovariance_direct",
    "SimulationResult",
    "SimulationSource",
    "kept_samples",
    "chain_mean",
    "chain_autocovariance",
    "effective_sample_size",
    "effective_sample_size_matrix",
    "split_rhat",
    "split_rhat_matrix",
    "ess_and_split_rhat",
    "read_comments",
    "read_stan_csv",
    "summarize",
]
