"""
Kernel Backends - execution strategies for the shared kernels.

The kernels in this package are written once. A backend supplies the parts
that depend on how lanes execute:

- n_lanes: number of partial sums the event kernel produces
- group_size: number of lanes in the reduction's local-accumulation phase
- barrier: synchronization point between phases
- combine: second reduction phase over the local totals
- platform: JAX platform the chain's arrays are placed on

HostBackend models worker threads on the CPU that run one after another within a
phase: combine is a plain accumulation loop and barrier is a no-op.

DeviceBackend models a GPU thread block sharing fast memory: combine is a
pairwise tree reduction that halves the active lanes each round, fenced by
optimization barriers so XLA cannot fuse the halving rounds with the
surrounding phases.

Backends are frozen dataclasses holding only ints and strings, so they are
hashable and can be passed to jax.jit as static arguments.
"""

import os
from dataclasses import dataclass
from typing import Optional

import jax
import jax.numpy as jnp

from ..hardware_info import gpu_available
from ..registry import register_backend, get_backend, list_backends

import logging
logger = logging.getLogger('nllchain')


DEFAULT_DEVICE_LANES = 4096
DEFAULT_DEVICE_GROUP_SIZE = 256


@dataclass(frozen=True)
class KernelBackend:
    """Common lane layout and reduction phase 1 for all backends."""
    n_lanes: int
    group_size: int
    platform: Optional[str] = None

    name = 'base'

    def __post_init__(self):
        if self.n_lanes < 1:
            raise ValueError(f"n_lanes must be >= 1, got {self.n_lanes}")
        if self.group_size < 1:
            raise ValueError(f"group_size must be >= 1, got {self.group_size}")

    def device(self):
        """The JAX device chain arrays are placed on."""
        if self.platform is None:
            return jax.devices()[0]
        return jax.devices(self.platform)[0]

    def place(self, tree):
        """Put every array in tree on this backend's device."""
        return jax.device_put(tree, self.device())

    def barrier(self, tree):
        return tree

    def accumulate_local(self, sums):
        """
        Reduction phase 1: lane l sums sums[l], sums[l + G], sums[l + 2G], ...

        The local-total buffer is sized from group_size, not fixed.
        """
        group = self.group_size
        count = sums.shape[0]
        rows = -(-count // group)
        padded = jnp.pad(sums, (0, rows * group - count))
        return jnp.sum(padded.reshape(rows, group), axis=0)

    def combine(self, local_totals):
        raise NotImplementedError


@dataclass(frozen=True)
class HostBackend(KernelBackend):
    """Host-parallel strategy: sequential combine, no barrier."""

    name = 'host'

    def combine(self, local_totals):
        def body(i, acc):
            return acc + local_totals[i]

        return jax.lax.fori_loop(
            0, local_totals.shape[0], body, jnp.zeros((), dtype=local_totals.dtype)
        )


@dataclass(frozen=True)
class DeviceBackend(KernelBackend):
    """GPU-grid strategy: barrier-fenced tree reduction over the group."""

    name = 'device'

    def __post_init__(self):
        super().__post_init__()
        if self.group_size & (self.group_size - 1):
            raise ValueError(
                f"DeviceBackend group_size must be a power of two, got {self.group_size}"
            )

    def barrier(self, tree):
        return jax.lax.optimization_barrier(tree)

    def combine(self, local_totals):
        local_totals = self.barrier(local_totals)
        width = local_totals.shape[0]
        while width > 1:
            width //= 2
            local_totals = local_totals[:width] + local_totals[width:2 * width]
        local_totals = self.barrier(local_totals)
        return local_totals[0]


def _host_factory(n_lanes=None, group_size=None, platform=None):
    if n_lanes is None:
        n_lanes = os.cpu_count() or 1
    if group_size is None:
        group_size = n_lanes
    if platform is None:
        platform = 'cpu'
    return HostBackend(n_lanes=n_lanes, group_size=group_size, platform=platform)


def _device_factory(n_lanes=None, group_size=None, platform=None):
    if n_lanes is None:
        n_lanes = DEFAULT_DEVICE_LANES
    if group_size is None:
        group_size = DEFAULT_DEVICE_GROUP_SIZE
    return DeviceBackend(n_lanes=n_lanes, group_size=group_size, platform=platform)


def register_default_backends():
    """Register the built-in 'host' and 'device' backends if missing."""
    registered = list_backends()
    if 'host' not in registered:
        register_backend('host', _host_factory)
    if 'device' not in registered:
        register_backend('device', _device_factory)


def resolve_backend(name: str, n_lanes=None, group_size=None, platform=None) -> KernelBackend:
    """
    Build the backend named in the chain config.

    'auto' picks 'device' on the GPU when JAX can see one, otherwise 'host'.
    """
    register_default_backends()
    if name == 'auto':
        if gpu_available():
            name = 'device'
            platform = platform or 'gpu'
        else:
            name = 'host'
        logger.info(f"Backend 'auto' resolved to '{name}'")
    return get_backend(name, n_lanes=n_lanes, group_size=group_size, platform=platform)


register_default_backends()
