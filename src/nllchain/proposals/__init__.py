"""
Proposal Distributions for Chain Stepping

Only the fixed-width Gaussian random walk is provided. Every function takes
the per-lane PRNG keys explicitly and returns the advanced keys; there is no
process-wide generator.
"""

from .gaussian import pick_new_vector, draw_lead_uniform

__all__ = [
    'pick_new_vector',
    'draw_lead_uniform',
]
