from __future__ import annotations
from dataclasses import dataclass, field
import logging
import pathlib
import os

import yaml

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("auto", "numpy", "jax")
SUPPORTED_AUTOCOVARIANCE_METHODS = ("fft", "direct")

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class ComputationConfig:
    """Numerical backend and autocovariance algorithm."""

    backend: str = "numpy"
    autocovariance: str = "fft"


@dataclass(frozen=True)
class DiagnosticsConfig:
    """Thresholds used to flag parameters in summary tables."""

    rhat_threshold: float = 1.1
    min_ess: float = 100.0


@dataclass(frozen=True)
class IOConfig:
    """Defaults for reading result files."""

    max_comment_lines: int = -1


@dataclass(frozen=True)
class LoggingConfig:
    """Logging setup applied by the command line scripts."""

    level: str = "INFO"
    format: str = DEFAULT_LOG_FORMAT


@dataclass(frozen=True)
class Config:
    """Typed container for configuration sections."""

    computation: ComputationConfig = field(default_factory=ComputationConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    io: IOConfig = field(default_factory=IOConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _section(raw: dict, name: str, cls):
    """Build the dataclass ``cls`` from ``raw[name]`` or use its defaults."""
    section_raw = raw.get(name)
    if section_raw is None:
        return cls()
    if not isinstance(section_raw, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    try:
        return cls(**section_raw)
    except TypeError as exc:
        raise ValueError(f"Invalid keys in config section '{name}': {exc}") from exc


def _parse_config(raw: dict) -> Config:
    """Convert a raw dictionary into ``Config``."""
    computation = _section(raw, "computation", ComputationConfig)
    if computation.backend not in SUPPORTED_BACKENDS:
        raise ValueError(
            f"Invalid backend '{computation.backend}'. Must be one of {SUPPORTED_BACKENDS}."
        )
    if computation.autocovariance not in SUPPORTED_AUTOCOVARIANCE_METHODS:
        raise ValueError(
            f"Invalid autocovariance method '{computation.autocovariance}'. "
            f"Must be one of {SUPPORTED_AUTOCOVARIANCE_METHODS}."
        )

    diagnostics = _section(raw, "diagnostics", DiagnosticsConfig)
    diagnostics = DiagnosticsConfig(
        rhat_threshold=float(diagnostics.rhat_threshold),
        min_ess=float(diagnostics.min_ess),
    )
    io_cfg = _section(raw, "io", IOConfig)
    io_cfg = IOConfig(max_comment_lines=int(io_cfg.max_comment_lines))

    return Config(
        computation=computation,
        diagnostics=diagnostics,
        io=io_cfg,
        logging=_section(raw, "logging", LoggingConfig),
    )


def load_config(path: str | pathlib.Path | None = None) -> Config:
    """Load configuration from YAML file.

    Args:
        path: Optional explicit path to the config file.
        If ``None`` and the ``CHAINDIAG_CONFIG`` environment variable is set,
        use that path. Otherwise look for ``config.yaml`` next to the package,
        falling back to built-in defaults when it is not there.
    """
    if path is None:
        env_cfg = os.environ.get('CHAINDIAG_CONFIG')
        if env_cfg:
            cfg_path = pathlib.Path(env_cfg)
        else:
            cfg_path = pathlib.Path(__file__).parent.parent / 'config.yaml'
            if not cfg_path.exists():
                logger.debug("No config.yaml at %s; using defaults", cfg_path)
                return Config()
    else:
        cfg_path = pathlib.Path(path)

    if not cfg_path.exists():
        raise RuntimeError(f'Config file not found: {cfg_path}')
    raw = yaml.safe_load(cfg_path.read_text())
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {cfg_path} must contain a mapping")
    return _parse_config(raw)


CONFIG = load_config()
