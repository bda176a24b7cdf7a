"""
Checkpoint I/O utilities for saving and loading chain state.

This module provides functions for:
- Building a checkpoint dict from the final ChainState of a run
- Saving checkpoints to disk for resumable runs
- Loading checkpoints and rebuilding a ChainState from them
"""

from typing import Any, Dict, Optional, Tuple

import numpy as np
from pathlib import Path

from .jump_log import JumpLog

import logging
logger = logging.getLogger('nllchain')


def build_checkpoint(state, user_config: Dict[str, Any], total_steps: int,
                     jump_log: Optional[JumpLog] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build a serializable checkpoint dict from a ChainState.

    Args:
        state: ChainState after the last flushed chunk
        user_config: User configuration dict (serializable, no JAX types)
        total_steps: Steps taken so far, across all run segments
        jump_log: Optional JumpLog to store alongside the state
        metadata: Optional dict of additional metadata

    Returns:
        Dict of numpy arrays and plain values
    """
    checkpoint = {
        'current': np.asarray(state.current),
        'proposed': np.asarray(state.proposed),
        'nll_current': float(state.nll_current),
        'nll_proposed': float(state.nll_proposed),
        'partial_sums': np.asarray(state.partial_sums),
        'keys': np.asarray(state.keys),
        'accepted': int(state.accepted),
        'total_steps': int(total_steps),
        # Validation metadata
        'n_params': user_config['n_params'],
        'n_signals': user_config['n_signals'],
        'n_lanes': user_config['n_lanes'],
        'rng_seed': user_config['rng_seed'],
    }
    if jump_log is not None:
        checkpoint['jump_rows'] = jump_log.rows
    if metadata:
        checkpoint['metadata'] = metadata
    return checkpoint


def save_checkpoint(filepath: str, checkpoint: Dict[str, Any]) -> None:
    """
    Save a checkpoint dict to disk for resuming later.

    Args:
        filepath: Path to save checkpoint (.npz file)
        checkpoint: Dict from build_checkpoint() or run_chain()
    """
    filepath = Path(filepath)
    np.savez_compressed(filepath, **checkpoint)
    logger.info(f"Checkpoint saved to {filepath} (step {checkpoint['total_steps']})")


def load_checkpoint(filepath: str) -> Dict[str, Any]:
    """
    Load a chain checkpoint from disk.

    Args:
        filepath: Path to checkpoint file (.npz)

    Returns:
        Dict with the same keys build_checkpoint() produces
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Checkpoint not found: {filepath}")

    # Copy arrays to avoid keeping memory-mapped file references
    with np.load(filepath, allow_pickle=True) as data:
        checkpoint = {
            'current': data['current'].copy(),
            'proposed': data['proposed'].copy(),
            'nll_current': float(data['nll_current']),
            'nll_proposed': float(data['nll_proposed']),
            'partial_sums': data['partial_sums'].copy(),
            'keys': data['keys'].copy(),
            'accepted': int(data['accepted']),
            'total_steps': int(data['total_steps']),
            'n_params': int(data['n_params']),
            'n_signals': int(data['n_signals']),
            'n_lanes': int(data['n_lanes']),
            'rng_seed': int(data['rng_seed']),
        }

        if 'jump_rows' in data:
            checkpoint['jump_rows'] = data['jump_rows'].copy()

        if 'metadata' in data:
            checkpoint['metadata'] = data['metadata'].item()

    return checkpoint


def initialize_from_checkpoint(checkpoint: Dict[str, Any], user_config: Dict[str, Any],
                               runtime_ctx: Dict[str, Any]) -> Tuple[Any, int, JumpLog]:
    """
    Rebuild the ChainState saved in a checkpoint.

    The restored state continues the exact random sequence of the run that
    wrote it. Partial sums are only restored when the lane count matches;
    otherwise they start from zero.

    Args:
        checkpoint: Dict from load_checkpoint() or build_checkpoint()
        user_config: User configuration dict for the new run segment
        runtime_ctx: Runtime context dict (backend, dtype)

    Returns:
        state: ChainState placed on the backend's device
        total_steps: Steps already taken
        jump_log: JumpLog holding the saved rows (empty if none were saved)
    """
    # Import JAX here to avoid import at module level (keeps module lightweight)
    import jax.numpy as jnp
    from .mcmc.types import ChainState

    if checkpoint['n_params'] != user_config['n_params']:
        raise ValueError(
            f"Checkpoint parameter count mismatch: checkpoint has {checkpoint['n_params']} "
            f"parameters, but the current fit has {user_config['n_params']}."
        )

    if checkpoint['n_signals'] != user_config['n_signals']:
        raise ValueError(
            f"Checkpoint has {checkpoint['n_signals']} signals, "
            f"current fit has {user_config['n_signals']}"
        )

    backend = runtime_ctx['backend']
    dtype = runtime_ctx['jnp_float_dtype']
    n_params = user_config['n_params']

    if checkpoint['n_lanes'] == backend.n_lanes:
        partial_sums = jnp.asarray(checkpoint['partial_sums'], dtype=dtype)
    else:
        logger.info(
            f"Lane count changed ({checkpoint['n_lanes']} -> {backend.n_lanes}), "
            f"partial sums restart from zero"
        )
        partial_sums = jnp.zeros(backend.n_lanes, dtype=dtype)

    state = ChainState(
        current=jnp.asarray(checkpoint['current'], dtype=dtype),
        proposed=jnp.asarray(checkpoint['proposed'], dtype=dtype),
        nll_current=jnp.asarray(checkpoint['nll_current'], dtype=dtype),
        nll_proposed=jnp.asarray(checkpoint['nll_proposed'], dtype=dtype),
        partial_sums=partial_sums,
        keys=jnp.asarray(checkpoint['keys'], dtype=jnp.uint32),
        accepted=jnp.asarray(checkpoint['accepted'], dtype=jnp.int32),
        counter=jnp.array(0, dtype=jnp.int32),
        jump_buffer=jnp.zeros((user_config['chunk_size'], n_params + 1), dtype=dtype),
    )

    if 'jump_rows' in checkpoint:
        jump_log = JumpLog.from_rows(checkpoint['jump_rows'])
    else:
        jump_log = JumpLog(n_params)

    return backend.place(state), checkpoint['total_steps'], jump_log
