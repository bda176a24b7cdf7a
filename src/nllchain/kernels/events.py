"""
Per-Event Partial-Sum Kernel.

Computes the event term of the likelihood,

    sum_i  w_i * log( sum_j  N_j * P_j(x_i) )

split into one partial sum per lane. Event i belongs to lane i mod n_lanes,
so every lane strides over the whole event range and lanes never share
mutable state.

Lookup-table entries that are NaN (empty histogram bins) count as zero
density. A lane whose final sum is NaN is not written: the partial-sum
buffer keeps that lane's previous value, so one bad lane cannot poison the
reduction.
"""

from typing import Optional

import jax.numpy as jnp

from ..mcmc.types import BufferView


def event_terms(lut, weights, pars, n_signals):
    """
    Per-event contributions w_i * log(s_i).

    Args:
        lut: (n_events, n_signals) density table, may contain NaN
        weights: (n_events,) integer event multiplicities
        pars: Parameter vector; the first n_signals entries are rates
        n_signals: Number of signals

    Returns:
        (n_events,) array; -inf or NaN where s_i <= 0
    """
    norms = pars[:n_signals]
    densities = jnp.where(jnp.isnan(lut), 0.0, lut).astype(pars.dtype)
    s = jnp.sum(densities * norms[None, :], axis=1)
    return jnp.log(s) * weights.astype(pars.dtype)


def lane_sums(terms, n_lanes):
    """Sum per-event terms into n_lanes strided partial sums."""
    n_events = terms.shape[0]
    rows = -(-n_events // n_lanes)
    # Padding is added after the log so it contributes exactly 0.
    padded = jnp.pad(terms, (0, rows * n_lanes - n_events))
    return jnp.sum(padded.reshape(rows, n_lanes), axis=0)


def nll_event_chunks(lut, weights, pars, n_signals, n_lanes, sums,
                     view: Optional[BufferView] = None):
    """
    NLL part 1: per-lane partial sums of the event term.

    Args:
        lut: (n_events, n_signals) density table
        weights: (n_events,) event multiplicities
        pars: Proposed parameter vector
        n_signals: Number of signals
        n_lanes: Number of lanes (partial sums) to produce
        sums: Partial-sum buffer; lanes are written at view
        view: Where this evaluator's lanes live inside sums.
            Defaults to the first n_lanes elements.

    Returns:
        Updated partial-sum buffer
    """
    if view is None:
        view = BufferView(offset=0, stride=1, length=n_lanes)
    previous = view.take(sums)
    fresh = lane_sums(event_terms(lut, weights, pars, n_signals), n_lanes)
    return view.put(sums, jnp.where(jnp.isnan(fresh), previous, fresh))
