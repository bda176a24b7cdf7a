"""
Chain Single Run - chunked Metropolis-Hastings driver.

This module provides run_chain() and its helper functions for executing one
run segment of a chain. Multi-segment runs pass the checkpoint of one
segment to the next via resume_from.

Helper functions:
- _initialize_chain: Fresh start from an initial vector, or resume
- _run_chain_chunks: Execute the chunk loop, flushing jump rows after each chunk
- _build_results: Assemble final results dict
"""

import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

import jax
import numpy as np

from .types import StepParams
from .config import (
    configure_chain_system,
    initialize_chain_state,
    validate_chain_inputs,
)
from .compile import compile_chain_kernel, benchmark_chain_kernel
from .diagnostics import (
    print_acceptance_summary,
    apply_burnin,
    summarize_parameters,
    print_parameter_summary,
)
from ..error_handling import validate_chain_config, diagnose_chain_issues, print_diagnostics
from ..checkpoint_io import load_checkpoint, initialize_from_checkpoint, build_checkpoint
from ..jump_log import JumpLog, flush_jump_buffer
from ..hardware_info import get_hardware_info

import logging
logger = logging.getLogger('nllchain')

# Public API for this module
__all__ = [
    'run_chain',
]


def _initialize_chain(
    initial_vector,
    resume_from: Optional[str],
    jump_log: Optional[JumpLog],
    fit_data,
    user_config: Dict[str, Any],
    runtime_ctx: Dict[str, Any],
    nll_initial: Optional[float],
    lut_fn: Optional[Callable],
):
    """
    Build the starting ChainState for this run segment.

    Returns:
        state: ChainState in the Proposed phase
        previous_steps: Steps taken by earlier segments
        jump_log: JumpLog to append this segment's rows to
    """
    if resume_from is not None:
        logger.info(f"Loading checkpoint from {resume_from}...")
        checkpoint = load_checkpoint(resume_from)
        state, previous_steps, saved_log = initialize_from_checkpoint(
            checkpoint, user_config, runtime_ctx
        )
        if jump_log is None:
            jump_log = saved_log
        logger.info(f"  Resuming at step {previous_steps}")
        return state, previous_steps, jump_log

    if initial_vector is None:
        raise ValueError("initial_vector is required unless resume_from is given")

    logger.info("Evaluating NLL of the initial vector...")
    state = initialize_chain_state(
        initial_vector, fit_data, user_config, runtime_ctx,
        nll_initial=nll_initial, lut_fn=lut_fn,
    )
    logger.info(f"  Initial NLL: {float(state.nll_current):.6f}")
    if jump_log is None:
        jump_log = JumpLog(user_config['n_params'])
    return state, 0, jump_log


def _run_chain_chunks(
    compiled_chunk,
    compiled_remainder,
    state,
    num_steps: int,
    chunk_size: int,
    jump_log: JumpLog,
    avg_time: Optional[float],
):
    """
    Execute the main chain loop.

    Args:
        compiled_chunk: Kernel running chunk_size steps
        compiled_remainder: Kernel running num_steps % chunk_size steps, or None
        state: Initial ChainState
        num_steps: Steps to run in this segment
        chunk_size: Steps per full chunk
        jump_log: Host log receiving the flushed rows
        avg_time: Estimated time per step (for progress estimate)

    Returns:
        state: Final ChainState (counter is 0, all rows flushed)
        wall_time: Total wall clock time for the loop
    """
    logger.info("\n--- CHAIN RUN ---")

    if avg_time:
        compute_time_sec = avg_time * num_steps
        finish_time = datetime.now() + timedelta(seconds=compute_time_sec)
        logger.info(f"Estimated computation time: {timedelta(seconds=int(compute_time_sec))}")
        logger.info(f"Estimated completion: {finish_time.strftime('%Y-%m-%d %I:%M:%S %p')}")

    start_run_time = time.perf_counter()
    num_chunks = num_steps // chunk_size

    for i in range(num_chunks):
        state = compiled_chunk(state)
        _, state = flush_jump_buffer(state, jump_log)
        if i % max(1, num_chunks // 10) == 0:
            logger.info(f"  Chunk {i+1}/{num_chunks}...")

    if compiled_remainder is not None:
        state = compiled_remainder(state)
        _, state = flush_jump_buffer(state, jump_log)

    jax.block_until_ready(state)
    wall_time = time.perf_counter() - start_run_time

    logger.info(f"\n--- Chain Run Summary ---")
    logger.info(f"  Total Wall Time: {timedelta(seconds=int(wall_time))} ({wall_time:.2f}s)")

    return state, wall_time


def _build_results(
    state,
    jump_log: JumpLog,
    user_config: Dict[str, Any],
    total_steps: int,
    compile_time: float,
    wall_time: float,
    avg_time: Optional[float],
) -> Dict[str, Any]:
    """Assemble the results dict of a run segment."""
    accepted = int(jax.device_get(state.accepted))
    rows = jump_log.rows
    kept = apply_burnin(rows, user_config['burnin_fraction'])
    summary = summarize_parameters(
        kept, user_config['confidence'], user_config.get('param_names')
    )
    print_parameter_summary(summary, user_config['confidence'])

    return {
        'jump_rows': rows,
        'accepted': accepted,
        'total_steps': total_steps,
        'acceptance_rate': accepted / total_steps if total_steps > 0 else 0.0,
        'final_vector': np.asarray(jax.device_get(state.current)),
        'final_nll': float(jax.device_get(state.nll_current)),
        'summary': summary,
        'chain_config': user_config,
        'compile_time': compile_time,
        'wall_time': wall_time,
        'avg_step_time': avg_time,
    }


def run_chain(
    chain_config: Dict[str, Any],
    fit_inputs: Dict[str, Any],
    initial_vector=None,
    nll_initial: Optional[float] = None,
    lut_fn: Optional[Callable] = None,
    resume_from: Optional[str] = None,
    jump_log: Optional[JumpLog] = None,
    benchmark_steps: int = 0,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Run one segment of a Metropolis-Hastings chain on the NLL.

    Args:
        chain_config: Chain configuration dict
        fit_inputs: Dict with 'lut', 'weights', 'n_signals', 'means', 'sigmas',
            'proposal_sigma'
        initial_vector: Starting parameter vector (required unless resuming)
        nll_initial: Optional precomputed NLL of initial_vector
        lut_fn: Optional traceable fn(proposed) -> (n_events, n_signals) lookup
            table, evaluated every step. Without it fit_inputs['lut'] is fixed.
            Compiled kernels are cached per lut_fn object, so pass the same
            function across runs; every new closure or lambda compiles and
            caches another kernel (see clear_compiled_kernel_cache).
        resume_from: Optional path to a checkpoint file to resume from
        jump_log: Optional JumpLog to append to (defaults to a new log, or the
            rows stored in the checkpoint when resuming)
        benchmark_steps: Steps to time before the run (0 disables)

    Returns:
        results: Dict containing:
            - jump_rows: (total_steps, n_params + 1) rows [params..., nll]
            - accepted / total_steps / acceptance_rate
            - final_vector / final_nll
            - summary: parameter summary after burn-in
            - diagnostics: Dict with issues, warnings and info
            - chain_config: Clean serializable config dict
        checkpoint: Dict with the final chain state for saving/resuming
    """
    # --- 1. VALIDATE CONFIGURATION ---
    logger.info("Validating chain configuration...")
    try:
        validate_chain_config(chain_config)
        logger.info("Configuration is valid\n")
    except ValueError as e:
        logger.info(f"Invalid configuration:\n{e}")
        raise

    # --- 2. CONFIGURE SYSTEM ---
    user_config, runtime_ctx, fit_data = configure_chain_system(chain_config, fit_inputs)
    backend = runtime_ctx['backend']
    step_params = runtime_ctx['step_params']

    logger.info("Validating inputs...")
    try:
        validate_chain_inputs(fit_data, initial_vector)
        logger.info("Validation passed")
    except ValueError as e:
        logger.info(f"[FAIL] Validation failed:\n{e}")
        raise

    hardware = get_hardware_info()
    logger.info(f"JAX backend: {hardware['jax_backend']} ({len(hardware['jax_devices'])} device(s))")
    logger.info(f"Starting chain at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    # --- 3. INITIALIZE CHAIN ---
    state, previous_steps, jump_log = _initialize_chain(
        initial_vector, resume_from, jump_log, fit_data,
        user_config, runtime_ctx, nll_initial, lut_fn,
    )

    # --- 4. COMPILE KERNELS ---
    num_steps = user_config['num_steps']
    chunk_size = user_config['chunk_size']
    compile_time = 0.0
    avg_time = None

    if num_steps > 0:
        compiled_chunk = None
        if num_steps >= chunk_size:
            compiled_chunk, compile_time = compile_chain_kernel(
                state, fit_data, backend, step_params, lut_fn
            )

        compiled_remainder = None
        remainder = num_steps % chunk_size
        if remainder:
            remainder_params = StepParams(CHUNK_SIZE=remainder, DEBUG_MODE=step_params.DEBUG_MODE)
            compiled_remainder, remainder_time = compile_chain_kernel(
                state, fit_data, backend, remainder_params, lut_fn
            )
            compile_time += remainder_time

        # --- 5. BENCHMARK ---
        if benchmark_steps > 0 and compiled_chunk is not None:
            bench = benchmark_chain_kernel(compiled_chunk, state, chunk_size, benchmark_steps)
            avg_time = bench['avg_time']

        # --- 6. RUN CHAIN ---
        state, wall_time = _run_chain_chunks(
            compiled_chunk, compiled_remainder, state,
            num_steps, chunk_size, jump_log, avg_time,
        )
    else:
        logger.info("\nSkipping main run.")
        wall_time = 0.0

    total_steps = previous_steps + num_steps
    accepted = int(jax.device_get(state.accepted))
    print_acceptance_summary(accepted, total_steps)

    # --- 7. POST-RUN DIAGNOSTICS ---
    diagnostics = {
        'compile_time': compile_time,
        'wall_time': wall_time,
        'avg_step_time': avg_time,
        'total_steps': total_steps,
    }

    logger.info("\n--- Post-Run Diagnostics ---")
    diagnostics = diagnose_chain_issues(jump_log.rows, accepted, total_steps, diagnostics)
    print_diagnostics(diagnostics)

    if diagnostics['issues']:
        logger.warning("\n  Issues detected during the run!")
        logger.info("Review diagnostics above before using results.")

    # --- 8. BUILD OUTPUTS ---
    results = _build_results(
        state, jump_log, user_config, total_steps, compile_time, wall_time, avg_time,
    )
    results['diagnostics'] = diagnostics

    checkpoint = build_checkpoint(state, user_config, total_steps, jump_log)

    return results, checkpoint
