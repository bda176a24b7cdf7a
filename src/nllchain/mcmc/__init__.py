"""
MCMC Subpackage - Metropolis-Hastings chain over the NLL.

This package contains the chain stepping logic:
- single_run: Chunked run driver (run_chain) and helpers
- compile: Kernel compilation and caching
- config: Configuration and initialization
- diagnostics: Acceptance and parameter summaries
- step: Combined step orchestrator (chain_step, finish_nll_jump_pick)
- decide: Acceptance decider
- types: Core data structures (BufferView, FitData, ChainState, StepParams)
- utils: Miscellaneous utilities
"""

# Import types first (needed by other modules)
from .types import BufferView, FitData, ChainState, StepParams, build_fit_data

# Import main entry point
from .single_run import run_chain

# Import commonly used functions
from .step import chain_step, finish_nll_jump_pick, evaluate_nll
from .decide import jump_decider, metropolis_accept
from .config import (
    configure_chain_system,
    initialize_chain_state,
    validate_chain_inputs,
    gen_lane_keys,
)
from .diagnostics import (
    print_acceptance_summary,
    apply_burnin,
    summarize_parameters,
    count_sentinel_rows,
)
from .compile import compile_chain_kernel, benchmark_chain_kernel, clear_compiled_kernel_cache

__all__ = [
    # Main entry point
    'run_chain',
    # Types
    'BufferView',
    'FitData',
    'ChainState',
    'StepParams',
    'build_fit_data',
    # Step
    'chain_step',
    'finish_nll_jump_pick',
    'evaluate_nll',
    'jump_decider',
    'metropolis_accept',
    # Config
    'configure_chain_system',
    'initialize_chain_state',
    'validate_chain_inputs',
    'gen_lane_keys',
    # Diagnostics
    'print_acceptance_summary',
    'apply_burnin',
    'summarize_parameters',
    'count_sentinel_rows',
    # Compile
    'compile_chain_kernel',
    'benchmark_chain_kernel',
    'clear_compiled_kernel_cache',
]
