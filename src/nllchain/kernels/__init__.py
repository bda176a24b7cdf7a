"""
Numeric kernels shared by every backend.

- events: per-event partial sums (NLL part 1)
- reduce: two-phase reduction of partial sums (NLL part 2)
- nll_total: normalization, constraints and sentinel handling (NLL part 3)
- lookup: assembling the lookup table from per-signal columns
- backend: HostBackend / DeviceBackend execution strategies
"""

from .backend import (
    KernelBackend,
    HostBackend,
    DeviceBackend,
    resolve_backend,
    register_default_backends,
)
from .events import nll_event_chunks, event_terms
from .reduce import nll_event_reduce
from .nll_total import nll_total, SENTINEL_NLL
from .lookup import lookup_table_from_columns, fill_lookup_column, column_view

__all__ = [
    'KernelBackend',
    'HostBackend',
    'DeviceBackend',
    'resolve_backend',
    'register_default_backends',
    'nll_event_chunks',
    'event_terms',
    'nll_event_reduce',
    'nll_total',
    'SENTINEL_NLL',
    'lookup_table_from_columns',
    'fill_lookup_column',
    'column_view',
]
