"""
Combined Step Orchestrator.

One chain step is Proposed -> Evaluated -> Decided -> Recorded:

- chain_step: (optional) lookup-table refresh for the proposed vector,
  event kernel, then finish_nll_jump_pick
- finish_nll_jump_pick: reduce partial sums, assemble the proposed NLL,
  run the lead-lane decision and draw the next proposal, all in one traced
  pass so no state leaves the device between phases

Barriers come from the backend: one after the reduction (the decider must
see the full total) and one after the decision (proposal lanes must see the
decided current vector).

evaluate_nll computes the NLL of an arbitrary vector with the same kernels;
it is used to precompute the starting NLL.
"""

from dataclasses import replace
from typing import Callable, Optional

import jax.numpy as jnp

from .types import ChainState, FitData
from .decide import jump_decider
from ..kernels.events import nll_event_chunks
from ..kernels.reduce import nll_event_reduce
from ..kernels.nll_total import nll_total
from ..proposals.gaussian import pick_new_vector, draw_lead_uniform


def _lookup_table(fit_data: FitData, vector, lut_fn: Optional[Callable]):
    """Lookup table for vector: the fixed table, or the external evaluator's."""
    if lut_fn is None:
        return fit_data.lut
    return lut_fn(vector)


def evaluate_nll(vector, fit_data: FitData, backend, lut_fn: Optional[Callable] = None,
                 sums=None):
    """
    Full NLL of one parameter vector.

    Args:
        vector: Parameter vector
        fit_data: FitData
        backend: KernelBackend
        lut_fn: Optional traceable fn(vector) -> (n_events, n_signals) table
        sums: Partial-sum buffer to start from (zeros if None)

    Returns:
        nll: Scalar NLL
        sums: Updated partial-sum buffer
    """
    if sums is None:
        sums = jnp.zeros(backend.n_lanes, dtype=vector.dtype)
    lut = _lookup_table(fit_data, vector, lut_fn)
    sums = nll_event_chunks(lut, fit_data.weights, vector, fit_data.n_signals,
                            backend.n_lanes, sums)
    total = nll_event_reduce(sums, backend)
    nll = nll_total(total, vector, fit_data.means, fit_data.sigmas, fit_data.n_signals)
    return nll, sums


def finish_nll_jump_pick(state: ChainState, fit_data: FitData, backend,
                         debug_mode: bool = False) -> ChainState:
    """
    Reduce, assemble, decide and propose in one pass.

    Expects state.partial_sums to hold the event sums of state.proposed.
    """
    total = nll_event_reduce(state.partial_sums, backend)
    total = backend.barrier(total)

    nll_proposed = nll_total(total, state.proposed, fit_data.means, fit_data.sigmas,
                             fit_data.n_signals)
    u, keys = draw_lead_uniform(state.keys, dtype=state.nll_current.dtype)
    state = replace(state, nll_proposed=nll_proposed, keys=keys)

    state = jump_decider(state, u, debug_mode)
    state = backend.barrier(state)

    proposed, keys = pick_new_vector(state.keys, state.current, fit_data.proposal_sigma)
    return replace(state, proposed=proposed, keys=keys)


def chain_step(state: ChainState, fit_data: FitData, backend, debug_mode: bool = False,
               lut_fn: Optional[Callable] = None) -> ChainState:
    """
    One full chain step starting from an already-proposed vector.

    Args:
        state: ChainState in the Proposed phase
        fit_data: FitData
        backend: KernelBackend
        debug_mode: Accept every step
        lut_fn: Optional traceable fn(proposed) -> lookup table, for fits
            whose PDFs depend on systematic parameters

    Returns:
        ChainState in the Proposed phase of the next step

    Each step appends one jump-buffer row. Callers driving steps directly
    must flush with flush_jump_buffer at least every jump_buffer.shape[0]
    steps; rows past the capacity are dropped and the flush raises.
    """
    lut = _lookup_table(fit_data, state.proposed, lut_fn)
    sums = nll_event_chunks(lut, fit_data.weights, state.proposed, fit_data.n_signals,
                            backend.n_lanes, state.partial_sums)
    state = replace(state, partial_sums=sums)
    return finish_nll_jump_pick(state, fit_data, backend, debug_mode)
