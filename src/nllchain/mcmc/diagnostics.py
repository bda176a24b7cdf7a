"""
Chain Diagnostics.

Post-run summaries of a jump log:
- print_acceptance_summary: Print MH acceptance rate
- apply_burnin: Drop the leading fraction of rows
- summarize_parameters: Mean, central interval and best fit per parameter
- print_parameter_summary: Log the table from summarize_parameters
- count_sentinel_rows: Rows whose NLL is the invalid-state sentinel
"""

from typing import Dict, Any, Optional, List

import numpy as np

from ..kernels.nll_total import SENTINEL_NLL

import logging
logger = logging.getLogger('nllchain')


def print_acceptance_summary(accepted: int, total_steps: int) -> None:
    """
    Print summary statistics for the MH acceptance rate.

    Args:
        accepted: Accepted-step count
        total_steps: Total-step count
    """
    if total_steps <= 0:
        return
    rate = accepted / total_steps
    logger.info("\n--- MH Acceptance Rate ---")
    logger.info(f"  Accepted: {accepted}/{total_steps} ({rate:.1%})")
    if rate < 0.10:
        logger.warning("  WARNING: acceptance rate < 10%")


def apply_burnin(rows: np.ndarray, burnin_fraction: float) -> np.ndarray:
    """Drop the first burnin_fraction of the rows."""
    rows = np.asarray(rows)
    n_burn = int(np.floor(rows.shape[0] * burnin_fraction))
    return rows[n_burn:]


def count_sentinel_rows(rows: np.ndarray, sentinel: float = SENTINEL_NLL) -> int:
    rows = np.asarray(rows)
    if rows.size == 0:
        return 0
    return int(np.sum(rows[:, -1] >= sentinel))


def summarize_parameters(
    rows: np.ndarray,
    confidence: float = 0.9,
    labels: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Summarize the parameter columns of a jump log.

    Rows carrying the sentinel NLL are excluded. The interval is the central
    `confidence` quantile range of each parameter's marginal; the best fit is
    the row with the lowest NLL.

    Args:
        rows: (n_rows, n_params + 1) jump log rows, burn-in already removed
        confidence: Interval level in (0, 1)
        labels: Optional parameter names; defaults to 'p0', 'p1', ...

    Returns:
        Dict with 'parameters' (label -> mean/lower/upper/best), 'best_nll',
        and 'n_rows' (rows used)
    """
    rows = np.asarray(rows)
    n_params = rows.shape[1] - 1
    if labels is None:
        labels = [f"p{i}" for i in range(n_params)]
    if len(labels) != n_params:
        raise ValueError(f"Got {len(labels)} labels for {n_params} parameters")

    valid = rows[rows[:, -1] < SENTINEL_NLL] if rows.size else rows
    summary = {'parameters': {}, 'best_nll': None, 'n_rows': int(valid.shape[0])}
    if valid.shape[0] == 0:
        return summary

    tail = (1.0 - confidence) / 2.0
    lower = np.quantile(valid[:, :-1], tail, axis=0)
    upper = np.quantile(valid[:, :-1], 1.0 - tail, axis=0)
    means = np.mean(valid[:, :-1], axis=0)
    best = valid[np.argmin(valid[:, -1])]

    for i, label in enumerate(labels):
        summary['parameters'][label] = {
            'mean': float(means[i]),
            'lower': float(lower[i]),
            'upper': float(upper[i]),
            'best': float(best[i]),
        }
    summary['best_nll'] = float(best[-1])
    return summary


def print_parameter_summary(summary: Dict[str, Any], confidence: float) -> None:
    if not summary['parameters']:
        logger.info("No valid rows to summarize")
        return
    logger.info(f"\n--- Parameter Summary ({summary['n_rows']} rows, {confidence:.0%} interval) ---")
    for label, stats in summary['parameters'].items():
        logger.info(
            f"  {label:>12s}: mean {stats['mean']:.6g}  "
            f"[{stats['lower']:.6g}, {stats['upper']:.6g}]  best {stats['best']:.6g}"
        )
    logger.info(f"  Best NLL: {summary['best_nll']:.6f}")
