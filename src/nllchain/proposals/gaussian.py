"""
Gaussian Random Walk Proposal

Independent per-parameter Gaussian perturbation of the current vector:

    proposed[i] = current[i] + sigma[i] * z_i,    z_i ~ N(0, 1)

Each parameter is one lane with its own PRNG key, so lanes are disjoint
over the parameter index space and need no coordination. There is no
covariance between parameters and the proposal is symmetric (no Hastings
correction is needed by the decider).

Proposal widths are fixed for the whole run.
"""

import jax
import jax.numpy as jnp
import jax.random as random


def _propose_lane(key, current_value, sigma):
    """One lane: advance its key and draw one perturbed value."""
    new_key, draw_key = random.split(key)
    z = random.normal(draw_key, dtype=current_value.dtype)
    return current_value + sigma * z, new_key


def pick_new_vector(keys, current_vector, sigma):
    """
    Draw a proposed parameter vector around the current one.

    Args:
        keys: (n_params, 2) per-lane PRNG keys
        current_vector: (n_params,) current parameters
        sigma: (n_params,) proposal widths

    Returns:
        proposed_vector: (n_params,) proposed parameters
        new_keys: (n_params, 2) advanced per-lane keys
    """
    sigma = jnp.broadcast_to(jnp.asarray(sigma, dtype=current_vector.dtype), current_vector.shape)
    proposed, new_keys = jax.vmap(_propose_lane)(keys, current_vector, sigma)
    return proposed, new_keys


def draw_lead_uniform(keys, dtype=jnp.float64):
    """
    Draw the Metropolis uniform from the lead lane (lane 0).

    Returns:
        u: Scalar uniform in [0, 1)
        new_keys: keys with lane 0 advanced; other lanes untouched
    """
    new_key, u_key = random.split(keys[0])
    u = random.uniform(u_key, dtype=dtype)
    return u, keys.at[0].set(new_key)
