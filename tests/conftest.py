import os

import numpy as np
import pytest
import yaml

from chaindiag.backends import clear_backend_cache
from chaindiag.config import load_config
from chaindiag.simulation import SimulationResult

from .utils.mock_data import ar1_chains, iid_chains


@pytest.fixture(scope="session")
def project_root_dir():
    """Returns the absolute path to the project root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture(autouse=True)
def _fresh_backend_cache():
    """Each test selects its numeric backend from scratch."""
    clear_backend_cache()
    yield
    clear_backend_cache()


@pytest.fixture
def mock_config(monkeypatch, tmp_path):
    """
    Mocks the chaindiag.CONFIG object with a temporary config file.
    It also patches CONFIG where it's imported directly in key modules.
    """
    dummy_config_content = {
        "computation": {"backend": "numpy", "autocovariance": "fft"},
        "diagnostics": {"rhat_threshold": 1.05, "min_ess": 50.0},
        "io": {"max_comment_lines": -1},
        "logging": {"level": "DEBUG"},
    }
    config_file_path = tmp_path / "test_mock_config.yaml"
    with open(config_file_path, 'w') as f:
        yaml.dump(dummy_config_content, f)

    new_mocked_config = load_config(config_file_path)

    modules_to_patch_config = [
        "chaindiag",
        "chaindiag.config",
        "chaindiag.autocovariance",
        "chaindiag.stan_csv",
        "chaindiag.summary",
        "scripts.chain_diagnostics",
    ]
    for module_name in modules_to_patch_config:
        try:
            module = __import__(module_name, fromlist=["CONFIG"])
        except ImportError:
            continue
        if hasattr(module, "CONFIG"):
            monkeypatch.setattr(module, "CONFIG", new_mocked_config)

    return new_mocked_config


@pytest.fixture
def ar1_sim():
    """Four positively autocorrelated chains of one parameter."""
    return SimulationResult.from_draws(ar1_chains(n_chains=4, n_samples=2000, phi=0.7, seed=11))


@pytest.fixture
def iid_sim():
    """Four chains of independent standard normal draws."""
    return SimulationResult.from_draws(iid_chains(n_chains=4, n_samples=4000, seed=5))


@pytest.fixture
def two_param_sim():
    """Three chains, two parameters, 100 saved draws of which 20 are warmup."""
    rng = np.random.default_rng(3)
    draws = rng.normal(size=(100, 3, 2))
    draws[:, :, 1] += 5.0
    return SimulationResult.from_draws(draws, warmup=20, param_names=["alpha", "beta"])
