"""
Host-side jump log.

The compiled kernel writes one [params..., nll] row per step into a
fixed-capacity device buffer. After every chunk the driver copies the filled
rows to a JumpLog and resets the device counter, so the buffer never
overflows and the log grows by exactly one row per step.
"""

from dataclasses import replace
from typing import Any, Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np


class JumpLog:
    """Append-only list of [params..., nll] rows kept on the host."""

    def __init__(self, n_params: int):
        self.n_params = int(n_params)
        self._blocks = []
        self._n_rows = 0

    @classmethod
    def from_rows(cls, rows: np.ndarray) -> 'JumpLog':
        rows = np.asarray(rows)
        if rows.ndim != 2 or rows.shape[1] < 2:
            raise ValueError(f"jump rows must have shape (n, n_params + 1), got {rows.shape}")
        log = cls(rows.shape[1] - 1)
        log.append(rows)
        return log

    def append(self, rows: np.ndarray) -> None:
        rows = np.asarray(rows)
        if rows.ndim != 2 or rows.shape[1] != self.n_params + 1:
            raise ValueError(
                f"expected rows of width {self.n_params + 1}, got shape {rows.shape}"
            )
        if rows.shape[0] == 0:
            return
        self._blocks.append(rows.copy())
        self._n_rows += rows.shape[0]

    @property
    def n_rows(self) -> int:
        return self._n_rows

    def __len__(self) -> int:
        return self._n_rows

    @property
    def rows(self) -> np.ndarray:
        """All rows as one (n_rows, n_params + 1) array."""
        if not self._blocks:
            return np.zeros((0, self.n_params + 1))
        if len(self._blocks) > 1:
            self._blocks = [np.concatenate(self._blocks, axis=0)]
        return self._blocks[0]

    @property
    def params(self) -> np.ndarray:
        return self.rows[:, :-1]

    @property
    def nll(self) -> np.ndarray:
        return self.rows[:, -1]


def flush_jump_buffer(state,
                      jump_log: Optional[JumpLog] = None) -> Tuple[np.ndarray, Any]:
    """
    Copy rows [0, counter) of the device jump buffer to the host.

    Args:
        state: ChainState after a compiled chunk
        jump_log: If given, the rows are appended to it

    Returns:
        rows: (counter, n_params + 1) numpy array
        state: ChainState with counter reset to 0

    Raises:
        ValueError: If more steps ran than the buffer holds (rows were lost)
    """
    counter = int(jax.device_get(state.counter))
    capacity = state.jump_buffer.shape[0]
    if counter > capacity:
        raise ValueError(
            f"Jump buffer overflowed: {counter} steps ran but it holds {capacity} rows. "
            f"Flush at least every {capacity} steps."
        )
    rows = np.asarray(jax.device_get(state.jump_buffer[:counter]))
    if jump_log is not None:
        jump_log.append(rows)
    return rows, replace(state, counter=jnp.zeros_like(state.counter))
