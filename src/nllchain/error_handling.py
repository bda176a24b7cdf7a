"""
Error Handling and Validation Utilities for the Chain Driver

This module provides validation functions and diagnostic tools for chain runs.
The compiled kernels never raise: invalid numeric states are mapped to the
sentinel NLL. Everything that can be checked before compilation is checked
here instead.
"""

from typing import Any, Dict

import numpy as np

import logging
logger = logging.getLogger('nllchain')

# Acceptance rates outside this band usually mean the proposal widths are off
LOW_ACCEPTANCE = 0.05
HIGH_ACCEPTANCE = 0.95


def validate_chain_config(chain_config: Dict[str, Any]) -> None:
    """
    Validates that chain configuration is sensible.

    Args:
        chain_config: Configuration dictionary

    Raises:
        ValueError: If configuration is invalid
    """
    errors = []

    required_keys = ['num_steps']
    for key in required_keys:
        if key not in chain_config:
            errors.append(f"Missing required config key: '{key}'")

    if 'num_steps' in chain_config:
        if chain_config['num_steps'] < 0:
            errors.append("num_steps must be >= 0")

    if 'chunk_size' in chain_config:
        if chain_config['chunk_size'] < 1:
            errors.append("chunk_size must be >= 1")

    if 'n_lanes' in chain_config and chain_config['n_lanes'] is not None:
        if chain_config['n_lanes'] < 1:
            errors.append("n_lanes must be >= 1")

    if 'group_size' in chain_config and chain_config['group_size'] is not None:
        if chain_config['group_size'] < 1:
            errors.append("group_size must be >= 1")

    if 'backend' in chain_config:
        if not isinstance(chain_config['backend'], str):
            errors.append("backend must be a string ('host', 'device' or 'auto')")

    if 'burnin_fraction' in chain_config:
        fraction = chain_config['burnin_fraction']
        if fraction < 0 or fraction >= 1:
            errors.append(f"burnin_fraction must be in [0, 1), got {fraction}")

    if 'confidence' in chain_config:
        confidence = chain_config['confidence']
        if confidence <= 0 or confidence >= 1:
            errors.append(f"confidence must be in (0, 1), got {confidence}")

    if 'debug_mode' in chain_config:
        if not isinstance(chain_config['debug_mode'], (bool, np.bool_)):
            errors.append("debug_mode must be True or False")

    if errors:
        raise ValueError("Invalid chain configuration:\n  " + "\n  ".join(errors))


def diagnose_chain_issues(jump_rows: np.ndarray, accepted: int, total_steps: int,
                          diagnostics: Dict[str, Any], sentinel: float = 1e18) -> Dict[str, Any]:
    """
    Analyzes a jump log to identify common issues.

    Args:
        jump_rows: Jump log rows (n_steps, n_params + 1); last column is NLL
        accepted: Accepted-step count for the run
        total_steps: Total-step count for the run
        diagnostics: Existing diagnostics dict to extend
        sentinel: NLL value used for rejected invalid states

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = diagnostics | {
        'issues': [],
        'warnings': [],
        'info': []
    }

    if jump_rows.size and not np.all(np.isfinite(jump_rows)):
        diagnostics['issues'].append(
            "Jump log contains NaN or Inf values - likelihood became unstable"
        )

    if jump_rows.size:
        nll = jump_rows[:, -1]
        n_sentinel = int(np.sum(nll >= sentinel))
        if n_sentinel > 0:
            diagnostics['issues'].append(
                f"{n_sentinel} step(s) recorded the sentinel NLL - "
                f"the chain started in (or was forced into) an invalid state"
            )

    if total_steps > 0:
        rate = accepted / total_steps
        if accepted == 0:
            diagnostics['warnings'].append("No steps were accepted - chain is stuck")
        elif rate < LOW_ACCEPTANCE:
            diagnostics['warnings'].append(
                f"Acceptance rate {rate:.3f} is very low - proposal widths may be too large"
            )
        elif rate > HIGH_ACCEPTANCE:
            diagnostics['warnings'].append(
                f"Acceptance rate {rate:.3f} is very high - proposal widths may be too small"
            )
        diagnostics['info'].append(f"Acceptance rate: {rate:.4f}")

    diagnostics['info'].append(f"Total steps: {total_steps}")
    diagnostics['info'].append(f"Accepted steps: {accepted}")
    if jump_rows.ndim == 2:
        diagnostics['info'].append(f"Number of parameters: {jump_rows.shape[1] - 1}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Pretty-print diagnostics from diagnose_chain_issues."""
    if diagnostics['issues']:
        logger.error("\n[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("\n[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("\n[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("\n[OK] No issues detected")
