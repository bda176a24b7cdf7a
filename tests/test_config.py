"""
Configuration Tests - validation, defaults and backend registry

Run with: pytest tests/test_config.py -v
"""

import numpy as np
import pytest

from nllchain import registry
from nllchain.registry import register_backend, get_backend, list_backends
from nllchain.kernels import backend as backend_module
from nllchain.kernels.backend import (
    HostBackend,
    DeviceBackend,
    resolve_backend,
    register_default_backends,
    DEFAULT_DEVICE_LANES,
    DEFAULT_DEVICE_GROUP_SIZE,
)
from nllchain.mcmc.utils import clean_config
from nllchain.mcmc.types import build_fit_data
from nllchain.mcmc.config import configure_chain_system, validate_chain_inputs
from nllchain.error_handling import validate_chain_config
from nllchain.hardware_info import get_hardware_info


@pytest.fixture
def restore_registry():
    """Snapshot the backend registry and restore it after the test."""
    saved = dict(registry._REGISTRY)
    yield
    registry._REGISTRY.clear()
    registry._REGISTRY.update(saved)


# ============================================================================
# CONFIG VALIDATION
# ============================================================================

class TestValidateChainConfig:
    """Test validate_chain_config."""

    def test_valid_config(self, small_chain_config):
        validate_chain_config(small_chain_config)

    def test_missing_num_steps(self):
        with pytest.raises(ValueError, match="num_steps"):
            validate_chain_config({'chunk_size': 10})

    def test_all_errors_reported_together(self):
        bad = {
            'num_steps': -1,
            'chunk_size': 0,
            'n_lanes': 0,
            'burnin_fraction': 1.0,
            'confidence': 0.0,
            'debug_mode': 'yes',
        }
        with pytest.raises(ValueError) as exc_info:
            validate_chain_config(bad)
        message = str(exc_info.value)
        for key in ('num_steps', 'chunk_size', 'n_lanes', 'burnin_fraction',
                    'confidence', 'debug_mode'):
            assert key in message

    def test_backend_must_be_string(self):
        with pytest.raises(ValueError, match="backend"):
            validate_chain_config({'num_steps': 1, 'backend': 3})


class TestCleanConfig:
    """Test default filling."""

    def test_defaults(self):
        cfg = clean_config({'num_steps': 5})
        assert cfg['backend'] == 'auto'
        assert cfg['rng_seed'] == 42
        assert cfg['chunk_size'] == 100
        assert cfg['debug_mode'] is False
        assert cfg['use_double'] is True
        assert cfg['n_lanes'] is None
        assert cfg['num_steps'] == 5

    def test_input_not_mutated(self):
        cfg = {'num_steps': 5}
        clean_config(cfg)
        assert cfg == {'num_steps': 5}


# ============================================================================
# INPUT VALIDATION
# ============================================================================

class TestValidateChainInputs:
    """Test validate_chain_inputs."""

    def test_valid(self, end_to_end_inputs):
        assert validate_chain_inputs(build_fit_data(end_to_end_inputs), np.array([3.0, 1.0]))

    def test_initial_vector_shape(self, end_to_end_inputs):
        with pytest.raises(ValueError, match="initial vector"):
            validate_chain_inputs(build_fit_data(end_to_end_inputs), np.zeros(3))

    def test_more_signals_than_params(self, end_to_end_inputs):
        inputs = dict(end_to_end_inputs, n_signals=3)
        with pytest.raises(ValueError) as exc_info:
            validate_chain_inputs(build_fit_data(inputs))
        assert "cannot exceed" in str(exc_info.value)
        assert "signal columns" in str(exc_info.value)

    def test_weights_shape(self, end_to_end_inputs):
        inputs = dict(end_to_end_inputs, weights=np.ones(4, dtype=np.int32))
        with pytest.raises(ValueError, match="weights"):
            validate_chain_inputs(build_fit_data(inputs))

    def test_negative_proposal_sigma(self, end_to_end_inputs):
        inputs = dict(end_to_end_inputs, proposal_sigma=np.array([0.1, -0.1]))
        with pytest.raises(ValueError, match="proposal_sigma"):
            validate_chain_inputs(build_fit_data(inputs))


class TestBuildFitData:
    """Test FitData defaults."""

    def test_defaults(self):
        fd = build_fit_data({'lut': np.ones(4), 'n_signals': 1})
        assert fd.lut.shape == (4, 1)
        assert fd.n_params == 1
        assert fd.n_events == 4
        np.testing.assert_array_equal(np.asarray(fd.weights), np.ones(4))
        np.testing.assert_array_equal(np.asarray(fd.sigmas), [0.0])
        np.testing.assert_array_equal(np.asarray(fd.proposal_sigma), [1.0])

    def test_n_params_from_constraints(self):
        fd = build_fit_data({
            'lut': np.ones((4, 2)),
            'n_signals': 2,
            'sigmas': np.array([0.0, 0.0, 1.0]),
            'proposal_sigma': 0.5,
        })
        assert fd.n_params == 3
        np.testing.assert_array_equal(np.asarray(fd.proposal_sigma), [0.5, 0.5, 0.5])


# ============================================================================
# BACKENDS AND REGISTRY
# ============================================================================

class TestBackendRegistry:
    """Test backend registration and resolution."""

    def test_defaults_registered(self):
        assert {'host', 'device'} <= set(list_backends())

    def test_device_defaults(self):
        backend = get_backend('device')
        assert isinstance(backend, DeviceBackend)
        assert backend.n_lanes == DEFAULT_DEVICE_LANES
        assert backend.group_size == DEFAULT_DEVICE_GROUP_SIZE

    def test_host_overrides(self):
        backend = get_backend('host', n_lanes=3, group_size=5)
        assert backend == HostBackend(n_lanes=3, group_size=5, platform='cpu')

    def test_unknown_backend(self):
        with pytest.raises(KeyError, match="Available"):
            get_backend('fpga')

    def test_duplicate_registration(self, restore_registry):
        with pytest.raises(ValueError, match="already registered"):
            register_backend('host', lambda **kw: None)

    def test_factory_must_be_callable(self, restore_registry):
        with pytest.raises(ValueError, match="callable"):
            register_backend('broken', 'not a function')

    def test_custom_backend(self, restore_registry):
        register_backend('narrow', lambda n_lanes=None, group_size=None, platform=None:
                         DeviceBackend(n_lanes=2, group_size=2, platform=platform))
        assert resolve_backend('narrow') == DeviceBackend(n_lanes=2, group_size=2)

    def test_default_registration_after_clear(self, restore_registry):
        registry.clear_registry()
        register_default_backends()
        assert set(list_backends()) == {'host', 'device'}

    def test_auto_without_gpu(self, monkeypatch):
        monkeypatch.setattr(backend_module, 'gpu_available', lambda: False)
        assert isinstance(resolve_backend('auto', n_lanes=2), HostBackend)

    def test_auto_with_gpu(self, monkeypatch):
        monkeypatch.setattr(backend_module, 'gpu_available', lambda: True)
        backend = resolve_backend('auto')
        assert isinstance(backend, DeviceBackend)
        assert backend.platform == 'gpu'

    def test_backends_are_hashable(self):
        assert hash(HostBackend(4, 2)) == hash(HostBackend(4, 2))

    def test_host_runs_on_cpu(self):
        """The host backend places arrays on the CPU even when a GPU is visible."""
        backend = resolve_backend('host')
        assert backend.platform == 'cpu'
        assert backend.device().platform == 'cpu'

    def test_host_platform_override(self):
        assert get_backend('host', platform='gpu').platform == 'gpu'

    def test_auto_without_gpu_runs_on_cpu(self, monkeypatch):
        monkeypatch.setattr(backend_module, 'gpu_available', lambda: False)
        assert resolve_backend('auto').platform == 'cpu'


class TestConfigureChainSystem:
    """Test configure_chain_system outputs."""

    def test_user_config(self, small_chain_config, two_signal_fit):
        user_config, runtime_ctx, fit_data = configure_chain_system(small_chain_config,
                                                                    two_signal_fit)
        assert user_config['backend'] == 'host'
        assert user_config['n_params'] == 3
        assert user_config['n_signals'] == 2
        assert user_config['n_events'] == 200
        assert runtime_ctx['backend'] == HostBackend(n_lanes=4, group_size=2, platform='cpu')
        assert runtime_ctx['step_params'].CHUNK_SIZE == 100
        assert fit_data.n_params == 3


def test_hardware_info_keys():
    info = get_hardware_info()
    for key in ('jax_backend', 'jax_devices', 'jax_version', 'x64_enabled'):
        assert key in info
