"""
nllchain - Extended-likelihood NLL kernels with a Metropolis-Hastings chain

Public API:
    Chain:
        run_chain - Run one segment of a chain in compiled chunks
        chain_step - One full step (event kernel, reduce, decide, propose)
        evaluate_nll - NLL of a single parameter vector

    Kernels:
        nll_event_chunks - Per-lane partial sums of the event term
        nll_event_reduce - Two-phase reduction of the partial sums
        nll_total - Normalization, Gaussian constraints and sentinel handling
        pick_new_vector - Per-parameter Gaussian random-walk proposal
        jump_decider - Metropolis acceptance and jump-buffer row

    Backends:
        HostBackend / DeviceBackend - Lane and reduction strategies
        register_backend - Register a backend factory under a name
        get_backend - Build a registered backend
        list_backends - List all registered backends

    Checkpointing:
        save_checkpoint - Save chain state and jump log to disk
        load_checkpoint - Load chain state from disk
        initialize_from_checkpoint - Rebuild a ChainState from a checkpoint

Example:
    from nllchain import run_chain

    fit_inputs = {
        'lut': lut,              # (n_events, n_signals) float32
        'weights': weights,      # (n_events,) int32
        'n_signals': 2,
        'means': means,
        'sigmas': sigmas,
        'proposal_sigma': widths,
    }
    results, checkpoint = run_chain({'num_steps': 10000, 'backend': 'auto'},
                                    fit_inputs, initial_vector)
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

# Import mcmc subpackage to register the FitData / ChainState pytrees
from .mcmc import (
    run_chain,
    chain_step,
    finish_nll_jump_pick,
    evaluate_nll,
    jump_decider,
    BufferView,
    FitData,
    ChainState,
    StepParams,
    build_fit_data,
)

from .kernels import (
    KernelBackend,
    HostBackend,
    DeviceBackend,
    resolve_backend,
    nll_event_chunks,
    nll_event_reduce,
    nll_total,
    SENTINEL_NLL,
    lookup_table_from_columns,
)
from .proposals import pick_new_vector

from .registry import register_backend, get_backend, list_backends

from .jump_log import JumpLog, flush_jump_buffer

from .checkpoint_io import (
    build_checkpoint,
    save_checkpoint,
    load_checkpoint,
    initialize_from_checkpoint,
)

from .error_handling import validate_chain_config, diagnose_chain_issues

from .hardware_info import get_hardware_info

__all__ = [
    # Chain
    'run_chain',
    'chain_step',
    'finish_nll_jump_pick',
    'evaluate_nll',
    'jump_decider',
    # Types
    'BufferView',
    'FitData',
    'ChainState',
    'StepParams',
    'build_fit_data',
    # Kernels
    'KernelBackend',
    'HostBackend',
    'DeviceBackend',
    'resolve_backend',
    'nll_event_chunks',
    'nll_event_reduce',
    'nll_total',
    'SENTINEL_NLL',
    'lookup_table_from_columns',
    'pick_new_vector',
    # Registry
    'register_backend',
    'get_backend',
    'list_backends',
    # Jump log
    'JumpLog',
    'flush_jump_buffer',
    # Checkpointing
    'build_checkpoint',
    'save_checkpoint',
    'load_checkpoint',
    'initialize_from_checkpoint',
    # Validation / diagnostics
    'validate_chain_config',
    'diagnose_chain_issues',
    'get_hardware_info',
]
