"""
Pytest configuration and shared fixtures for nllchain tests.
"""

import numpy as np
import pytest

import nllchain  # noqa: F401  (sets JAX environment defaults first)
import jax
import jax.numpy as jnp

from nllchain.kernels.backend import HostBackend, DeviceBackend
from nllchain.mcmc.types import build_fit_data

jax.config.update("jax_enable_x64", True)


# Per-event terms for the worked example below: log 3, log 2, log 7
END_TO_END_NLL = -(np.log(3.0) + np.log(2.0) + np.log(7.0)) + 4.0


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def end_to_end_inputs():
    """2 signals, 3 events, one NaN density, no constraints."""
    return {
        'lut': np.array([[1.0, np.nan], [0.5, 0.5], [2.0, 1.0]], dtype=np.float32),
        'weights': np.array([1, 1, 1], dtype=np.int32),
        'n_signals': 2,
        'means': np.zeros(2),
        'sigmas': np.zeros(2),
        'proposal_sigma': np.array([0.1, 0.1]),
    }


@pytest.fixture
def end_to_end_pars():
    return jnp.array([3.0, 1.0], dtype=jnp.float64)


@pytest.fixture
def end_to_end_fit_data(end_to_end_inputs):
    return build_fit_data(end_to_end_inputs)


@pytest.fixture
def host_backend():
    """Small host backend so lane padding is exercised."""
    return HostBackend(n_lanes=4, group_size=2)


@pytest.fixture
def device_backend():
    """Device backend on the default device (CPU in CI)."""
    return DeviceBackend(n_lanes=8, group_size=4)


@pytest.fixture
def two_signal_fit():
    """
    Synthetic two-signal fit with one constrained nuisance parameter.

    Signal A is concentrated at low x, signal B is flat; 200 events drawn
    from a 60/40 mixture.
    """
    rng = np.random.default_rng(7)
    n_a, n_b = 120, 80
    x = np.concatenate([rng.exponential(0.2, n_a), rng.uniform(0.0, 1.0, n_b)])
    x = np.clip(x, 0.0, 1.0)
    pdf_a = (np.exp(-x / 0.2) / (0.2 * (1.0 - np.exp(-5.0)))).astype(np.float32)
    pdf_b = np.ones_like(x, dtype=np.float32)
    lut = np.stack([pdf_a, pdf_b], axis=1)
    return {
        'lut': lut,
        'weights': np.ones(x.shape[0], dtype=np.int32),
        'n_signals': 2,
        'means': np.array([0.0, 0.0, 0.0]),
        'sigmas': np.array([0.0, 0.0, 1.0]),
        'proposal_sigma': np.array([5.0, 5.0, 0.3]),
    }


@pytest.fixture
def two_signal_start():
    return np.array([100.0, 100.0, 0.0])


@pytest.fixture
def small_chain_config(rng_seed):
    """Short host-backend chain with an uneven final chunk."""
    return {
        'backend': 'host',
        'n_lanes': 4,
        'group_size': 2,
        'rng_seed': rng_seed,
        'num_steps': 250,
        'chunk_size': 100,
    }
