"""
Step Tests - acceptance decider and combined step orchestrator

Tests the Metropolis decision and one full chain step:
- Downhill proposals are always accepted
- The jump buffer grows by exactly one row per step
- Debug mode accepts everything
- Sentinel proposals are rejected

Run with: pytest tests/test_step.py -v
"""

from dataclasses import replace

import numpy as np
import jax
import jax.numpy as jnp
import pytest

from nllchain.kernels.nll_total import SENTINEL_NLL
from nllchain.mcmc.decide import metropolis_accept, jump_decider, append_jump
from nllchain.mcmc.step import chain_step, finish_nll_jump_pick
from nllchain.mcmc.config import configure_chain_system, initialize_chain_state

from conftest import END_TO_END_NLL


@pytest.fixture
def step_setup(end_to_end_inputs):
    """Configured host backend and initial state for the worked example."""
    chain_config = {
        'backend': 'host',
        'n_lanes': 4,
        'group_size': 2,
        'num_steps': 10,
        'chunk_size': 10,
    }
    user_config, runtime_ctx, fit_data = configure_chain_system(chain_config, end_to_end_inputs)
    state = initialize_chain_state(np.array([3.0, 1.0]), fit_data, user_config, runtime_ctx)
    return state, fit_data, runtime_ctx['backend']


# ============================================================================
# ACCEPTANCE DECIDER
# ============================================================================

class TestMetropolisAccept:
    """Test the acceptance rule."""

    @pytest.mark.parametrize("u", [0.0, 0.5, 0.999999])
    def test_downhill_always_accepted(self, u):
        assert bool(metropolis_accept(jnp.asarray(5.0), jnp.asarray(4.9), jnp.asarray(u)))

    def test_far_uphill_rejected(self):
        assert not bool(metropolis_accept(jnp.asarray(0.0), jnp.asarray(10.0), jnp.asarray(0.5)))

    def test_uphill_accepted_below_ratio(self):
        """u <= exp(current - proposed) accepts."""
        ratio = np.exp(-1.0)
        assert bool(metropolis_accept(jnp.asarray(0.0), jnp.asarray(1.0), jnp.asarray(ratio - 1e-6)))
        assert not bool(metropolis_accept(jnp.asarray(0.0), jnp.asarray(1.0), jnp.asarray(ratio + 1e-6)))

    def test_debug_mode_accepts_uphill(self):
        assert bool(metropolis_accept(jnp.asarray(0.0), jnp.asarray(SENTINEL_NLL),
                                      jnp.asarray(0.9), debug_mode=True))

    def test_sentinel_rejected(self):
        assert not bool(metropolis_accept(jnp.asarray(100.0), jnp.asarray(SENTINEL_NLL),
                                          jnp.asarray(0.3)))


class TestJumpDecider:
    """Test the chain-state update and jump-buffer row."""

    def test_accepted_step_updates_current(self, step_setup):
        state, _, _ = step_setup
        state = replace(state, nll_proposed=state.nll_current - 1.0)
        new = jump_decider(state, jnp.asarray(0.5))

        np.testing.assert_array_equal(np.asarray(new.current), np.asarray(state.proposed))
        assert int(new.accepted) == 1
        assert int(new.counter) == 1
        row = np.asarray(new.jump_buffer[0])
        np.testing.assert_array_equal(row[:-1], np.asarray(state.proposed))
        assert row[-1] == pytest.approx(float(state.nll_current) - 1.0)

    def test_rejected_step_still_records_row(self, step_setup):
        state, _, _ = step_setup
        state = replace(state, nll_proposed=jnp.asarray(SENTINEL_NLL))
        new = jump_decider(state, jnp.asarray(0.5))

        np.testing.assert_array_equal(np.asarray(new.current), np.asarray(state.current))
        assert int(new.accepted) == 0
        assert int(new.counter) == 1
        row = np.asarray(new.jump_buffer[0])
        np.testing.assert_array_equal(row[:-1], np.asarray(state.current))
        assert row[-1] == pytest.approx(float(state.nll_current))

    def test_append_jump_writes_at_counter(self):
        buf = jnp.zeros((3, 3))
        buf, counter = append_jump(buf, jnp.asarray(1), jnp.array([1.0, 2.0]), jnp.asarray(7.0))
        assert int(counter) == 2
        np.testing.assert_array_equal(np.asarray(buf[1]), [1.0, 2.0, 7.0])
        np.testing.assert_array_equal(np.asarray(buf[0]), [0.0, 0.0, 0.0])


# ============================================================================
# COMBINED STEP ORCHESTRATOR
# ============================================================================

class TestChainStep:
    """Test chain_step and finish_nll_jump_pick."""

    def test_initial_nll(self, step_setup):
        state, _, _ = step_setup
        np.testing.assert_allclose(float(state.nll_current), END_TO_END_NLL, rtol=1e-12)
        assert int(state.counter) == 0

    def test_one_row_per_step(self, step_setup):
        state, fit_data, backend = step_setup
        step = jax.jit(chain_step, static_argnames=('backend', 'debug_mode', 'lut_fn'))

        accepted = []
        for n in range(1, 8):
            state = step(state, fit_data, backend=backend)
            assert int(state.counter) == n
            accepted.append(int(state.accepted))
        assert accepted == sorted(accepted)
        assert accepted[-1] <= 7

    def test_rows_track_current(self, step_setup):
        """Every row holds the current vector and NLL after that step's decision."""
        state, fit_data, backend = step_setup
        step = jax.jit(chain_step, static_argnames=('backend', 'debug_mode', 'lut_fn'))
        for _ in range(5):
            state = step(state, fit_data, backend=backend)
            row = np.asarray(state.jump_buffer[int(state.counter) - 1])
            np.testing.assert_array_equal(row[:-1], np.asarray(state.current))
            assert row[-1] == float(state.nll_current)

    def test_debug_mode_accepts_every_step(self, step_setup):
        state, fit_data, backend = step_setup
        step = jax.jit(chain_step, static_argnames=('backend', 'debug_mode', 'lut_fn'))
        for _ in range(5):
            proposed = np.asarray(state.proposed)
            state = step(state, fit_data, backend=backend, debug_mode=True)
            np.testing.assert_array_equal(np.asarray(state.current), proposed)
        assert int(state.accepted) == 5

    def test_finish_reads_partial_sums(self, step_setup):
        """finish_nll_jump_pick assembles the NLL from the stored partial sums."""
        state, fit_data, backend = step_setup
        sums = jnp.zeros_like(state.partial_sums).at[0].set(np.log(42.0))
        state = replace(state, proposed=jnp.array([3.0, 1.0]), partial_sums=sums)

        new = finish_nll_jump_pick(state, fit_data, backend, debug_mode=True)
        np.testing.assert_allclose(float(new.nll_current), END_TO_END_NLL, rtol=1e-12)
        np.testing.assert_array_equal(np.asarray(new.current), [3.0, 1.0])

    def test_lut_fn_is_used(self, step_setup):
        """An external lookup-table evaluator replaces the fixed table."""
        state, fit_data, backend = step_setup

        def flat_lut(pars):
            return jnp.ones((3, 2), dtype=jnp.float32)

        step = jax.jit(chain_step, static_argnames=('backend', 'debug_mode', 'lut_fn'))
        state = replace(state, proposed=jnp.array([1.0, 1.0]))
        state = step(state, fit_data, backend=backend, debug_mode=True, lut_fn=flat_lut)
        # 3 * log(2) events term, normalization 2
        np.testing.assert_allclose(float(state.nll_current), -3 * np.log(2.0) + 2.0, rtol=1e-12)
