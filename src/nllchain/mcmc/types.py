"""
Chain Data Structures and Type Definitions.

This module contains the core data structures used by the step kernels:
- BufferView: Bounds-checked (offset, stride, length) view over a flat buffer
- FitData: Read-only fit inputs (lookup table, weights, constraints, widths)
- ChainState: Mutable per-chain state, the carry of the compiled step loop
- StepParams: Immutable step parameters for JAX static arguments
- build_fit_data: Factory function for FitData
"""

import jax
import jax.numpy as jnp
import numpy as np
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class BufferView:
    """
    Strided view over a flat 1-D buffer.

    Lets several independent evaluators place their outputs into one shared
    buffer (e.g. one lookup-table column per signal, or one block of partial
    sums per evaluator) without handing out raw offsets. Element k of the
    view is buffer[offset + k * stride].

    All fields are plain ints so a view can be a static argument; the bounds
    check against the buffer happens at trace time, never on device.
    """
    offset: int
    stride: int
    length: int

    def __post_init__(self):
        if self.offset < 0:
            raise IndexError(f"BufferView offset must be >= 0, got {self.offset}")
        if self.stride < 1:
            raise IndexError(f"BufferView stride must be >= 1, got {self.stride}")
        if self.length < 0:
            raise IndexError(f"BufferView length must be >= 0, got {self.length}")

    @property
    def end(self) -> int:
        """One past the last buffer index touched by this view."""
        if self.length == 0:
            return self.offset
        return self.offset + (self.length - 1) * self.stride + 1

    def check(self, size: int) -> None:
        """Raise IndexError if the view does not fit in a buffer of this size."""
        if self.end > size:
            raise IndexError(
                f"BufferView(offset={self.offset}, stride={self.stride}, length={self.length}) "
                f"needs {self.end} elements but buffer has {size}"
            )

    def indices(self) -> np.ndarray:
        return np.arange(self.length, dtype=np.int32) * self.stride + self.offset

    def take(self, buffer):
        """Read the viewed elements of buffer."""
        self.check(buffer.shape[0])
        return buffer[self.indices()]

    def put(self, buffer, values):
        """Return a copy of buffer with the viewed elements replaced by values."""
        self.check(buffer.shape[0])
        if values.shape[0] != self.length:
            raise ValueError(
                f"BufferView of length {self.length} cannot hold {values.shape[0]} values"
            )
        return buffer.at[self.indices()].set(values)


@dataclass(frozen=True)
class FitData:
    """
    Read-only inputs of one chain.

    Registered as a JAX pytree: arrays are traced, n_signals is static
    (it decides which parameters are rates).
    """
    lut: jnp.ndarray             # (n_events, n_signals) float32, event-major, may hold NaN
    weights: jnp.ndarray         # (n_events,) int32 event multiplicities
    means: jnp.ndarray           # (n_params,) Gaussian constraint means
    sigmas: jnp.ndarray          # (n_params,) constraint widths, <= 0 disables
    proposal_sigma: jnp.ndarray  # (n_params,) random-walk step widths
    n_signals: int

    @property
    def n_events(self) -> int:
        return self.lut.shape[0]

    @property
    def n_params(self) -> int:
        return self.means.shape[0]


def _fit_data_flatten(fd):
    children = (fd.lut, fd.weights, fd.means, fd.sigmas, fd.proposal_sigma)
    aux_data = (fd.n_signals,)
    return children, aux_data


def _fit_data_unflatten(aux_data, children):
    lut, weights, means, sigmas, proposal_sigma = children
    (n_signals,) = aux_data
    return FitData(
        lut=lut,
        weights=weights,
        means=means,
        sigmas=sigmas,
        proposal_sigma=proposal_sigma,
        n_signals=n_signals,
    )


jax.tree_util.register_pytree_node(FitData, _fit_data_flatten, _fit_data_unflatten)


@dataclass(frozen=True)
class ChainState:
    """
    Mutable state of one Markov chain.

    Every field is an array so the whole state is the carry of a
    jax.lax.fori_loop. "Mutation" means building a new ChainState with
    dataclasses.replace.

    The jump buffer has a fixed capacity (the compiled chunk size); the
    driver flushes rows [0, counter) to the host after every chunk.
    """
    current: jnp.ndarray        # (n_params,) current parameter vector
    proposed: jnp.ndarray       # (n_params,) proposed parameter vector
    nll_current: jnp.ndarray    # () NLL of current
    nll_proposed: jnp.ndarray   # () NLL of proposed (valid after evaluation)
    partial_sums: jnp.ndarray   # (partial_count,) per-lane event sums
    keys: jnp.ndarray           # (n_params, 2) per-lane PRNG keys, lane 0 is the lead lane
    accepted: jnp.ndarray       # () int32 accepted-step count
    counter: jnp.ndarray        # () int32 rows currently in jump_buffer
    jump_buffer: jnp.ndarray    # (capacity, n_params + 1) rows of [params..., nll]


def _chain_state_flatten(cs):
    children = (
        cs.current, cs.proposed, cs.nll_current, cs.nll_proposed,
        cs.partial_sums, cs.keys, cs.accepted, cs.counter, cs.jump_buffer
    )
    return children, None


def _chain_state_unflatten(aux_data, children):
    (current, proposed, nll_current, nll_proposed,
     partial_sums, keys, accepted, counter, jump_buffer) = children
    return ChainState(
        current=current,
        proposed=proposed,
        nll_current=nll_current,
        nll_proposed=nll_proposed,
        partial_sums=partial_sums,
        keys=keys,
        accepted=accepted,
        counter=counter,
        jump_buffer=jump_buffer,
    )


jax.tree_util.register_pytree_node(ChainState, _chain_state_flatten, _chain_state_unflatten)


@dataclass(frozen=True)
class StepParams:
    """
    Immutable step parameters for JAX static argument compatibility.

    CHUNK_SIZE is both the number of steps per compiled call and the
    jump buffer capacity.
    """
    CHUNK_SIZE: int
    DEBUG_MODE: bool = False


def build_fit_data(fit_inputs: Dict[str, Any], float_dtype=jnp.float64) -> FitData:
    """
    Build FitData from a fit_inputs dict.

    Args:
        fit_inputs: Dict with 'lut', 'weights', 'n_signals', and optionally
            'means', 'sigmas', 'proposal_sigma'. Missing constraints mean
            "unconstrained" (sigma 0); a missing proposal_sigma means width 1.
        float_dtype: dtype for parameter-space arrays

    Returns:
        FitData with JAX arrays
    """
    lut = np.asarray(fit_inputs['lut'], dtype=np.float32)
    if lut.ndim == 1:
        lut = lut.reshape(-1, 1)
    n_events = lut.shape[0]
    n_signals = int(fit_inputs['n_signals'])

    weights = fit_inputs.get('weights')
    if weights is None:
        weights = np.ones(n_events, dtype=np.int32)

    n_params = fit_inputs.get('n_params')
    if n_params is None:
        n_params = n_signals
        for key in ('means', 'sigmas', 'proposal_sigma'):
            value = fit_inputs.get(key)
            if value is not None and np.ndim(value) == 1:
                n_params = len(value)
                break
    n_params = int(n_params)

    means = fit_inputs.get('means')
    if means is None:
        means = np.zeros(n_params)
    sigmas = fit_inputs.get('sigmas')
    if sigmas is None:
        sigmas = np.zeros(n_params)
    proposal_sigma = fit_inputs.get('proposal_sigma')
    if proposal_sigma is None:
        proposal_sigma = np.ones(n_params)
    proposal_sigma = np.broadcast_to(np.asarray(proposal_sigma, dtype=np.float64), (n_params,))

    return FitData(
        lut=jnp.asarray(lut, dtype=jnp.float32),
        weights=jnp.asarray(weights, dtype=jnp.int32),
        means=jnp.asarray(means, dtype=float_dtype),
        sigmas=jnp.asarray(sigmas, dtype=float_dtype),
        proposal_sigma=jnp.asarray(proposal_sigma, dtype=float_dtype),
        n_signals=n_signals,
    )
