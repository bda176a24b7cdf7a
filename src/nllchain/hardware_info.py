"""
Hardware Info - Hardware fingerprinting for backend selection and logging.

Functions:
- get_hardware_info: Collect GPU/JAX hardware fingerprint
- gpu_available: Whether JAX can see a GPU device
"""

import subprocess
from typing import Dict, Any

import jax
import jax.numpy as jnp


def gpu_available() -> bool:
    """Return True if JAX has at least one GPU device."""
    try:
        return len(jax.devices('gpu')) > 0
    except RuntimeError:
        # jax.devices raises when the platform is not initialised at all
        return False


def get_hardware_info() -> Dict[str, Any]:
    """
    Collect hardware information for run context.

    Logged at the start of every run so that jump logs from different
    machines can be told apart.
    """
    info = {
        'jax_backend': str(jax.default_backend()),
        'jax_devices': [str(d) for d in jax.devices()],
        'jax_version': jax.__version__,
        'x64_enabled': bool(jax.dtypes.canonicalize_dtype(jnp.float64) == jnp.float64),
    }

    try:
        result = subprocess.run(
            ['nvidia-smi', '--query-gpu=name,memory.total,driver_version', '--format=csv,noheader'],
            capture_output=True, text=True, timeout=5
        )
        if result.returncode == 0:
            parts = result.stdout.strip().split(', ')
            if len(parts) >= 3:
                info['gpu_name'] = parts[0]
                info['gpu_memory'] = parts[1]
                info['driver_version'] = parts[2]
    except (subprocess.TimeoutExpired, FileNotFoundError):
        pass

    return info
