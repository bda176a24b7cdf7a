"""
Lookup-table assembly helpers.

The lookup table is produced outside this package, typically by one PDF
evaluator per signal. Each evaluator owns one column of the event-major
table; in the flat buffer that column is the view
(offset=signal, stride=n_signals, length=n_events).
"""

import jax.numpy as jnp

from ..mcmc.types import BufferView


def column_view(signal: int, n_events: int, n_signals: int) -> BufferView:
    """View of one signal's densities inside a flat event-major table."""
    if not 0 <= signal < n_signals:
        raise IndexError(f"signal {signal} out of range for {n_signals} signals")
    return BufferView(offset=signal, stride=n_signals, length=n_events)


def empty_lookup_buffer(n_events: int, n_signals: int):
    """Flat float32 buffer for an (n_events, n_signals) table, all NaN."""
    return jnp.full((n_events * n_signals,), jnp.nan, dtype=jnp.float32)


def fill_lookup_column(buffer, signal, values, n_events, n_signals):
    """Write one signal's per-event densities into the flat buffer."""
    view = column_view(signal, n_events, n_signals)
    return view.put(buffer, jnp.asarray(values, dtype=buffer.dtype))


def lookup_table_from_buffer(buffer, n_events, n_signals):
    """Reshape the flat buffer into the (n_events, n_signals) table the kernels read."""
    BufferView(offset=0, stride=1, length=n_events * n_signals).check(buffer.shape[0])
    return buffer[:n_events * n_signals].reshape(n_events, n_signals)


def lookup_table_from_columns(columns):
    """
    Assemble a table from a list of per-signal density arrays.

    Args:
        columns: Sequence of n_signals arrays, each (n_events,)

    Returns:
        (n_events, n_signals) float32 table
    """
    n_signals = len(columns)
    if n_signals == 0:
        raise ValueError("At least one signal column is required")
    n_events = len(columns[0])
    buffer = empty_lookup_buffer(n_events, n_signals)
    for signal, values in enumerate(columns):
        if len(values) != n_events:
            raise ValueError(
                f"Signal {signal} has {len(values)} events, expected {n_events}"
            )
        buffer = fill_lookup_column(buffer, signal, values, n_events, n_signals)
    return lookup_table_from_buffer(buffer, n_events, n_signals)
