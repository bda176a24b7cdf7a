"""
Reduction Kernel.

NLL part 2: total up the partial sums from the event kernel in two phases.

1. Local accumulation: each of the backend's group_size lanes sums a strided
   subset of the partial sums.
2. Combine: the backend reduces the local totals to one value (tree
   reduction between barriers on the device, a plain loop on the host).

The result is the same, up to floating-point reassociation, for any lane
count or group size.
"""

import jax.numpy as jnp


def nll_event_reduce(sums, backend):
    """
    Total the partial sums.

    Args:
        sums: (partial_count,) partial sums
        backend: KernelBackend supplying the phase layout

    Returns:
        Scalar total
    """
    local_totals = backend.accumulate_local(sums)
    local_totals = backend.barrier(local_totals)
    return backend.combine(local_totals)


def reduce_partitioned(values, n_lanes, backend):
    """
    Partition values over n_lanes and reduce them with the given backend.

    Used to check that totals do not depend on the partition.
    """
    count = values.shape[0]
    rows = -(-count // n_lanes)
    padded = jnp.pad(values, (0, rows * n_lanes - count))
    partials = jnp.sum(padded.reshape(rows, n_lanes), axis=0)
    return nll_event_reduce(partials, backend)
