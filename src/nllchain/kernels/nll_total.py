"""
Total-NLL Assembler.

NLL part 3: combine the event term with the extended-likelihood
normalization and the Gaussian constraints,

    NLL = -sum_events + sum_{j < ns} N_j + sum_{k: sigma_k > 0} ((p_k - mu_k) / sigma_k)^2

Invalid states are not errors. They map to SENTINEL_NLL, which the
Metropolis test rejects with near certainty:
- the event total is NaN
- any rate (index < ns) is negative
The sentinel replaces the whole value; it is never added to.
"""

import jax.numpy as jnp

SENTINEL_NLL = 1e18


def constraint_terms(pars, means, sigmas):
    """Per-parameter Gaussian penalty; exactly 0 where sigma <= 0."""
    active = sigmas > 0
    safe_sigmas = jnp.where(active, sigmas, 1.0)
    pulls = (pars - means) / safe_sigmas
    return jnp.where(active, pulls * pulls, 0.0)


def nll_total(events_total, pars, means, sigmas, n_signals):
    """
    Assemble the total NLL for one parameter vector.

    Args:
        events_total: Sum of w_i * log(s_i) over events
        pars: Parameter vector (rates first, then nuisance parameters)
        means: Constraint means
        sigmas: Constraint widths, <= 0 for unconstrained
        n_signals: Number of rate parameters

    Returns:
        Scalar NLL, or SENTINEL_NLL for invalid states
    """
    events_term = -events_total
    is_rate = jnp.arange(pars.shape[0]) < n_signals

    normalization = jnp.sum(jnp.where(is_rate, pars, 0.0))
    constraints = jnp.sum(constraint_terms(pars, means, sigmas))
    nll = events_term + normalization + constraints

    negative_rate = jnp.any(is_rate & (pars < 0))
    invalid = jnp.isnan(events_term) | negative_rate
    return jnp.where(invalid, jnp.asarray(SENTINEL_NLL, dtype=nll.dtype), nll)
