"""
Chain Kernel Compilation and Caching.

This module handles JAX compilation of the chain kernel:
- _run_chain_chunk: Module-level chunk runner for cache-stable tracing
- _compute_cache_key: Compute in-memory cache key for compiled kernels
- benchmark_chain_kernel: Time steps on a compiled kernel
- _COMPILED_KERNEL_CACHE: In-memory cache for compiled kernels, keyed by
  backend, step parameters, lut_fn identity and array shapes
- clear_compiled_kernel_cache: Empty that cache
"""

import time
from dataclasses import replace
from typing import Callable, Dict, Optional, Tuple

import jax
import jax.numpy as jnp
import jax.lax

from .types import ChainState, FitData, StepParams
from .step import chain_step

import logging
logger = logging.getLogger('nllchain')


# --- COMPILED FUNCTION CACHE ---
# Cache compiled chain kernels by configuration (in-memory, within session)
_COMPILED_KERNEL_CACHE = {}


def _compute_cache_key(fit_data: FitData, state: ChainState, backend,
                       step_params: StepParams, lut_fn: Optional[Callable]) -> Tuple:
    """
    Compute a cache key for the compiled chain kernel.

    The key captures everything that affects the compiled function:
    - Backend (name, lane count, group size, platform)
    - StepParams (chunk length, debug mode)
    - Lookup-table evaluator identity
    - Array shapes and dtypes (not values)
    """
    fit_shapes = tuple(
        (leaf.shape, str(leaf.dtype)) for leaf in jax.tree_util.tree_leaves(fit_data)
    )
    state_shapes = tuple(
        (leaf.shape, str(leaf.dtype)) for leaf in jax.tree_util.tree_leaves(state)
    )
    key = (
        backend,
        step_params,
        lut_fn,
        fit_data.n_signals,
        fit_shapes,
        state_shapes,
    )
    return key


def get_compiled_kernel_cache() -> Dict:
    """Get reference to the compiled kernel cache."""
    return _COMPILED_KERNEL_CACHE


def clear_compiled_kernel_cache() -> None:
    """Drop all compiled kernels held in memory."""
    _COMPILED_KERNEL_CACHE.clear()


def _run_chain_chunk(state, fit_data, backend, step_params, lut_fn):
    """
    Module-level chunk runner for cache-stable tracing.

    Runs step_params.CHUNK_SIZE chain steps in one fori_loop. The state
    never leaves the device inside a chunk.

    Args:
        state: ChainState (traced)
        fit_data: FitData (traced)
        backend: KernelBackend (static)
        step_params: StepParams (static)
        lut_fn: Optional lookup-table evaluator (static)

    Returns:
        ChainState after the chunk
    """
    def fori_body(i, s):
        return chain_step(s, fit_data, backend, step_params.DEBUG_MODE, lut_fn)

    return jax.lax.fori_loop(0, step_params.CHUNK_SIZE, fori_body, state)


def compile_chain_kernel(
    state: ChainState,
    fit_data: FitData,
    backend,
    step_params: StepParams,
    lut_fn: Optional[Callable] = None,
) -> Tuple[Callable, float]:
    """
    Compile the chain kernel, using cache if available.

    Args:
        state: Initial ChainState for tracing
        fit_data: FitData (bound into the returned function)
        backend: KernelBackend
        step_params: StepParams with chunk length and debug mode
        lut_fn: Optional lookup-table evaluator

    Returns:
        Tuple of (compiled_chunk_fn, compile_time)
        compiled_chunk_fn maps a ChainState to the ChainState one chunk later.
    """
    cache_key = _compute_cache_key(fit_data, state, backend, step_params, lut_fn)
    compiled_fn = _COMPILED_KERNEL_CACHE.get(cache_key)

    if compiled_fn is not None:
        logger.info("Using cached kernel (in-memory)")
        _fd = fit_data
        return (lambda s: compiled_fn(s, _fd)), 0.0

    run_chunk_jit = jax.jit(
        _run_chain_chunk,
        static_argnames=('backend', 'step_params', 'lut_fn')
    )

    logger.info(f"Compiling kernel ({step_params.CHUNK_SIZE} steps per chunk)...")
    compile_start = time.perf_counter()

    # AOT compilation with explicit arguments
    compiled_fn = run_chunk_jit.lower(
        state, fit_data, backend, step_params, lut_fn
    ).compile()

    compile_time = time.perf_counter() - compile_start
    logger.info(f"Compiled in {compile_time:.4f}s")

    _COMPILED_KERNEL_CACHE[cache_key] = compiled_fn
    logger.debug(f"Kernel cached (backend: {backend.name}, {backend.n_lanes} lanes)")

    _fd = fit_data
    def compiled_chunk(s):
        return compiled_fn(s, _fd)

    return compiled_chunk, compile_time


def benchmark_chain_kernel(compiled_chunk_fn: Callable, initial_state: ChainState,
                           chunk_size: int, benchmark_steps: int) -> Dict[str, float]:
    """
    Run benchmark steps on a compiled chain kernel.

    benchmark_steps is rounded down to whole chunks. Jump rows are
    discarded: the buffer counter is reset after every chunk.

    Args:
        compiled_chunk_fn: Compiled chunk function
        initial_state: Starting ChainState
        chunk_size: Steps per compiled chunk
        benchmark_steps: Number of steps to time

    Returns:
        Dict with 'avg_time' (seconds per step) and 'steps_per_sec'
    """
    num_chunks = max(1, benchmark_steps // chunk_size)
    logger.info(f"Running benchmark ({num_chunks * chunk_size} steps)...")

    state = initial_state
    start_bench = time.perf_counter()
    for _ in range(num_chunks):
        state = compiled_chunk_fn(state)
        state = replace(state, counter=jnp.zeros_like(state.counter))
    jax.block_until_ready(state)
    total_time = time.perf_counter() - start_bench

    avg_time = total_time / (num_chunks * chunk_size)
    steps_per_sec = 1.0 / avg_time if avg_time > 0 else float('inf')
    logger.info(f"Benchmark: {avg_time:.6f} s/step ({steps_per_sec:.1f} steps/s)")
    return {'avg_time': avg_time, 'steps_per_sec': steps_per_sec}
