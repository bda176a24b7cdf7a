"""
Chain Configuration and Initialization.

This module handles setting up and validating a chain run:
- configure_chain_system: Main configuration entry point
- initialize_chain_state: Build the starting ChainState
- validate_chain_inputs: Validate fit inputs before compiling
- gen_lane_keys: Per-lane JAX random keys from one shared seed

Configuration is split into two parts:
- user_config: Serializable config that can be saved/loaded without JAX
- runtime_ctx: JAX-dependent objects that exist only during execution

All config keys use lowercase with underscores (e.g., 'num_steps', 'rng_seed').
"""

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np
from typing import Dict, Tuple, Any, Callable, Optional

from .utils import clean_config
from .types import ChainState, FitData, StepParams, build_fit_data
from .step import evaluate_nll
from ..kernels.backend import resolve_backend
from ..proposals.gaussian import pick_new_vector

import logging
logger = logging.getLogger('nllchain')


def gen_lane_keys(rng_seed: int, n_lanes: int):
    """
    Generate one PRNG key per lane.

    All lanes share the seed; lane i uses the stream fold_in(seed_key, i),
    so no two lanes ever draw from the same sequence.

    Returns:
        (n_lanes, 2) uint32 key array
    """
    base_key = random.PRNGKey(rng_seed)
    return jax.vmap(lambda lane: random.fold_in(base_key, lane))(jnp.arange(n_lanes))


def validate_chain_inputs(fit_data: FitData, initial_vector=None) -> bool:
    """Validate fit inputs before starting the chain."""
    errors = []

    n_params = fit_data.n_params
    n_signals = fit_data.n_signals

    if fit_data.lut.ndim != 2:
        errors.append(f"lut must be 2-D (n_events, n_signals), got shape {fit_data.lut.shape}")
    elif fit_data.lut.shape[1] != n_signals:
        errors.append(
            f"lut has {fit_data.lut.shape[1]} signal columns, but n_signals is {n_signals}"
        )

    if fit_data.weights.shape != (fit_data.n_events,):
        errors.append(
            f"weights must have shape ({fit_data.n_events},), got {fit_data.weights.shape}"
        )

    if n_signals < 1:
        errors.append(f"n_signals must be >= 1, got {n_signals}")
    if n_signals > n_params:
        errors.append(f"n_signals ({n_signals}) cannot exceed number of parameters ({n_params})")

    for name in ('sigmas', 'proposal_sigma'):
        arr = getattr(fit_data, name)
        if arr.shape != (n_params,):
            errors.append(f"{name} must have shape ({n_params},), got {arr.shape}")

    if np.any(np.asarray(fit_data.proposal_sigma) < 0):
        errors.append("proposal_sigma must be >= 0")

    if initial_vector is not None:
        initial_vector = np.asarray(initial_vector)
        if initial_vector.shape != (n_params,):
            errors.append(
                f"initial vector must have shape ({n_params},), got {initial_vector.shape}"
            )

    if errors:
        error_msg = "Chain Input Validation Failed:\n  " + "\n  ".join(errors)
        raise ValueError(error_msg)

    return True


def configure_chain_system(
    chain_config: Dict[str, Any],
    fit_inputs: Dict[str, Any]
) -> Tuple[Dict[str, Any], Dict[str, Any], FitData]:
    """
    Configure a chain run from config and fit inputs.

    Splits configuration into:
    - user_config: Serializable values (can be saved to disk without JAX)
    - runtime_ctx: JAX-dependent objects (backend, dtypes, step params)

    Args:
        chain_config: Input configuration dict
        fit_inputs: Dict with 'lut', 'weights', 'n_signals', 'means', 'sigmas',
            'proposal_sigma'

    Returns:
        user_config: Clean config dict with user values + derived ints
        runtime_ctx: Dict with backend, dtypes and StepParams
        fit_data: FitData placed on the backend's device
    """
    chain_config = clean_config(chain_config)

    use_double = chain_config['use_double']
    if use_double:
        jax.config.update("jax_enable_x64", True)
        jnp_float_dtype = jnp.float64
    else:
        jax.config.update("jax_enable_x64", False)
        jnp_float_dtype = jnp.float32

    backend = resolve_backend(
        chain_config['backend'],
        n_lanes=chain_config['n_lanes'],
        group_size=chain_config['group_size'],
        platform=chain_config['platform'],
    )

    fit_data = build_fit_data(fit_inputs, float_dtype=jnp_float_dtype)
    fit_data = backend.place(fit_data)

    user_config = {
        'backend': backend.name,
        'platform': backend.platform,
        'n_lanes': backend.n_lanes,
        'group_size': backend.group_size,
        'rng_seed': chain_config['rng_seed'],
        'num_steps': chain_config['num_steps'],
        'chunk_size': chain_config['chunk_size'],
        'debug_mode': bool(chain_config['debug_mode']),
        'use_double': use_double,
        'burnin_fraction': chain_config['burnin_fraction'],
        'confidence': chain_config['confidence'],
        # Derived values
        'n_params': fit_data.n_params,
        'n_signals': fit_data.n_signals,
        'n_events': fit_data.n_events,
    }
    if 'param_names' in chain_config:
        user_config['param_names'] = list(chain_config['param_names'])

    step_params = StepParams(
        CHUNK_SIZE=chain_config['chunk_size'],
        DEBUG_MODE=bool(chain_config['debug_mode']),
    )

    runtime_ctx = {
        'backend': backend,
        'jnp_float_dtype': jnp_float_dtype,
        'step_params': step_params,
    }

    logger.info(
        f"Backend: {backend.name} ({backend.n_lanes} lanes, group size {backend.group_size}) "
        f"on {backend.device()}"
    )

    return user_config, runtime_ctx, fit_data


def initialize_chain_state(
    initial_vector,
    fit_data: FitData,
    user_config: Dict[str, Any],
    runtime_ctx: Dict[str, Any],
    nll_initial: Optional[float] = None,
    lut_fn: Optional[Callable] = None,
) -> ChainState:
    """
    Build the starting ChainState.

    The starting NLL is computed with the same kernels as every later step
    unless nll_initial is supplied. The first proposal is drawn here, so the
    returned state is in the Proposed phase.

    Args:
        initial_vector: Starting parameter vector (n_params,)
        fit_data: FitData
        user_config: User configuration (rng_seed, chunk_size)
        runtime_ctx: Runtime context (backend, dtype)
        nll_initial: Precomputed starting NLL
        lut_fn: Optional lookup-table evaluator

    Returns:
        ChainState placed on the backend's device
    """
    backend = runtime_ctx['backend']
    dtype = runtime_ctx['jnp_float_dtype']
    n_params = fit_data.n_params

    current = backend.place(jnp.asarray(initial_vector, dtype=dtype))
    sums = jnp.zeros(backend.n_lanes, dtype=dtype)
    if nll_initial is None:
        nll_current, sums = jax.jit(
            evaluate_nll, static_argnames=('backend', 'lut_fn')
        )(current, fit_data, backend=backend, lut_fn=lut_fn, sums=sums)
    else:
        nll_current = jnp.asarray(nll_initial, dtype=dtype)

    keys = gen_lane_keys(user_config['rng_seed'], n_params)
    proposed, keys = pick_new_vector(keys, current, fit_data.proposal_sigma)

    state = ChainState(
        current=current,
        proposed=proposed,
        nll_current=nll_current,
        nll_proposed=nll_current,
        partial_sums=sums,
        keys=keys,
        accepted=jnp.array(0, dtype=jnp.int32),
        counter=jnp.array(0, dtype=jnp.int32),
        jump_buffer=jnp.zeros((user_config['chunk_size'], n_params + 1), dtype=dtype),
    )
    return backend.place(state)
