import importlib
import logging

# Configure logger for the backends module
logger = logging.getLogger(__name__)

# Global variable to store the chosen backend info once determined.
_BACKEND_INFO = None

SUPPORTED_BACKENDS = ["numpy", "jax"]

class BackendNotAvailableError(RuntimeError):
    """Custom exception for when a backend cannot be initialized."""
    pass

def clear_backend_cache():
    """Clear the cached backend info to force re-detection."""
    global _BACKEND_INFO
    _BACKEND_INFO = None

def _jax_gpu_device(jax_module):
    """Return the platform name of the first JAX GPU device, or ``None``."""
    try:
        for device in jax_module.devices():
            platform = device.platform.upper()
            if platform in ("GPU", "CUDA", "ROCM", "METAL"):
                logger.debug(f"JAX GPU device found: {device.platform}")
                return device.platform.lower()
    except Exception as e:
        logger.debug(f"JAX device query failed: {e}")
    return None

def _enable_x64(jax_module):
    # Autocovariances must be computed in double precision.
    jax_module.config.update("jax_enable_x64", True)

def get_xp(requested_backend="auto"):
    """
    Selects and provides the numerical backend (NumPy or JAX) and its name.

    Args:
        requested_backend (str): "auto", "numpy", or "jax".
            - "auto": Use JAX when a GPU is available, otherwise NumPy.
            - "jax": Use JAX (GPU if available, else CPU). Error if JAX unavailable.
            - "numpy": Use NumPy.

    Returns:
        tuple: (module, str, str) -> (numerical_module, backend_name, device_name)
               Example: (jax.numpy, "jax", "gpu") or (numpy, "numpy", "cpu")

    Raises:
        BackendNotAvailableError: If JAX is requested but cannot be initialized.
        ValueError: If requested_backend is not a valid option.
    """
    global _BACKEND_INFO
    if _BACKEND_INFO is not None and requested_backend == _BACKEND_INFO['requested_backend_mode']:
        logger.debug(f"Returning cached backend: {_BACKEND_INFO['name']} on {_BACKEND_INFO['device']}")
        return _BACKEND_INFO['module'], _BACKEND_INFO['name'], _BACKEND_INFO['device']

    if requested_backend not in ["auto", "numpy", "jax"]:
        raise ValueError(f"Invalid backend '{requested_backend}'. Must be 'auto', 'numpy', or 'jax'.")

    xp = None
    backend_name = None
    device_name = "cpu"

    # --- JAX Attempt ---
    if requested_backend in ["auto", "jax"]:
        try:
            jax_module = importlib.import_module("jax")
            jnp_module = importlib.import_module("jax.numpy")
            logger.info("JAX found.")

            gpu = _jax_gpu_device(jax_module)
            if gpu is not None:
                _enable_x64(jax_module)
                xp, backend_name, device_name = jnp_module, "jax", gpu
                logger.info(f"Using JAX on GPU ({gpu}) with x64 precision.")
            elif requested_backend == "jax":
                _enable_x64(jax_module)
                xp, backend_name, device_name = jnp_module, "jax", "cpu"
                logger.info("Using JAX on CPU with x64 precision.")
            else:
                logger.info("JAX found but no GPU device; 'auto' falls back to NumPy.")
        except ImportError:
            logger.info("JAX not installed.")
            if requested_backend == "jax":
                raise BackendNotAvailableError("JAX backend was requested, but JAX is not installed.")
        except Exception as e:
            logger.warning(f"An unexpected error occurred during JAX backend setup: {e}", exc_info=True)
            if requested_backend == "jax":
                raise BackendNotAvailableError(f"JAX backend setup failed with an unexpected error: {e}")
            xp = None

    # --- NumPy Attempt or Fallback ---
    if xp is None:
        xp = importlib.import_module("numpy")
        backend_name = "numpy"
        device_name = "cpu"
        logger.info("Using NumPy backend on CPU.")

    _BACKEND_INFO = {
        'module': xp, 'name': backend_name, 'device': device_name,
        'requested_backend_mode': requested_backend
    }
    logger.debug(f"Caching and returning backend: {backend_name} on {device_name}")
    return xp, backend_name, device_name


__all__ = [
    "get_xp",
    "BackendNotAvailableError",
    "clear_backend_cache",
    "SUPPORTED_BACKENDS",
]
