"""
Acceptance Decider.

Metropolis test for one chain step, executed by the lead lane only. It is
the single point per step that touches shared chain state:

- accept if debug mode is on, or the proposed NLL is lower, or
  u <= exp(nll_current - nll_proposed)
- on acceptance copy the proposed vector and NLL into current and bump
  the accepted count
- always append [current..., nll_current] to the jump buffer, so the
  buffer records the chain state at every step, not only accepted moves
"""

from dataclasses import replace

import jax.numpy as jnp

from .types import ChainState


def metropolis_accept(nll_current, nll_proposed, u, debug_mode=False):
    """Boolean acceptance decision for one step."""
    downhill = nll_proposed < nll_current
    uphill_ok = u <= jnp.exp(nll_current - nll_proposed)
    return jnp.logical_or(jnp.asarray(debug_mode), jnp.logical_or(downhill, uphill_ok))


def append_jump(jump_buffer, counter, vector, nll):
    """Write one [vector..., nll] row at position counter."""
    row = jnp.concatenate([vector, jnp.reshape(nll, (1,)).astype(vector.dtype)])
    return jump_buffer.at[counter].set(row.astype(jump_buffer.dtype)), counter + 1


def jump_decider(state: ChainState, u, debug_mode: bool = False) -> ChainState:
    """
    Decide whether to accept the proposed step and record the chain state.

    Args:
        state: ChainState with nll_proposed already evaluated
        u: Uniform draw from the lead lane's key
        debug_mode: Accept every step unconditionally

    Returns:
        Updated ChainState (counter always advanced by one)
    """
    accept = metropolis_accept(state.nll_current, state.nll_proposed, u, debug_mode)

    current = jnp.where(accept, state.proposed, state.current)
    nll_current = jnp.where(accept, state.nll_proposed, state.nll_current)
    accepted = state.accepted + accept.astype(state.accepted.dtype)

    jump_buffer, counter = append_jump(state.jump_buffer, state.counter, current, nll_current)

    return replace(
        state,
        current=current,
        nll_current=nll_current,
        accepted=accepted,
        counter=counter,
        jump_buffer=jump_buffer,
    )
