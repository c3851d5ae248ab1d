import numpy as np
import pytest

from chaindiag.diagnostics import ess_and_split_rhat, split_rhat, split_rhat_matrix
from chaindiag.exceptions import DataError, NumericalError
from chaindiag.simulation import SimulationResult

from ..utils.mock_data import iid_chains, sim_dict
from ..utils.test_helpers import split_rhat_loop


def test_hand_computed_value():
    # Halves [1, 2], [3, 4], [2, 3], [4, 5]: B = 2 * var(1.5, 3.5, 2.5, 4.5) = 10/3,
    # W = 0.5, so R-hat = sqrt((20/3 + 1) / 2).
    sim = SimulationResult.from_dict(sim_dict([[1.0, 2.0, 3.0, 4.0], [2.0, 3.0, 4.0, 5.0]]))
    assert split_rhat(sim, 0) == pytest.approx(np.sqrt(23 / 6), rel=1e-12)


def test_matches_loop_reference_on_jagged_chains():
    rng = np.random.default_rng(12)
    chains = [rng.normal(size=n) for n in (81, 100, 90)]
    sim = SimulationResult.from_dict(sim_dict(chains, warmup2=[0, 10, 3]))
    kept = [chains[0], chains[1][10:], chains[2][3:]]
    assert split_rhat(sim, 0) == pytest.approx(split_rhat_loop(kept), rel=1e-12)


def test_converged_chains_close_to_one():
    draws = iid_chains(n_chains=4, n_samples=1000, loc=3.0, scale=0.01, seed=21)
    sim = SimulationResult.from_draws(draws)
    assert split_rhat(sim, 0) == pytest.approx(1.0, abs=0.01)


def test_diverging_chains_are_flagged():
    draws = iid_chains(n_chains=4, n_samples=500, seed=22) + 10.0 * np.arange(4)
    sim = SimulationResult.from_draws(draws)
    assert split_rhat(sim, 0) > 1.5


def test_drifting_single_chain_is_flagged():
    # Splitting lets one chain detect non-stationarity on its own.
    draws = (np.linspace(0.0, 20.0, 400) + np.random.default_rng(1).normal(size=400))[:, None]
    assert split_rhat_matrix(draws) > 1.5


def test_odd_count_drops_last_draw():
    draws = iid_chains(n_chains=3, n_samples=101, seed=23)
    odd = SimulationResult.from_draws(draws)
    even = SimulationResult.from_draws(draws[:100])
    assert split_rhat(odd, 0) == split_rhat(even, 0)
    assert split_rhat_matrix(draws) == split_rhat_matrix(draws[:100])


def test_longer_chains_are_cut_to_shortest():
    rng = np.random.default_rng(24)
    chains = [rng.normal(size=60), rng.normal(size=75)]
    jagged = SimulationResult.from_dict(sim_dict(chains))
    cut = SimulationResult.from_dict(sim_dict([chains[0], chains[1][:60]]))
    assert split_rhat(jagged, 0) == split_rhat(cut, 0)


def test_matrix_form_matches_simulation_form():
    draws = iid_chains(n_chains=4, n_samples=200, seed=25)
    assert split_rhat_matrix(draws) == split_rhat(SimulationResult.from_draws(draws), 0)


def test_warmup_is_excluded(two_param_sim):
    kept = [two_param_sim.kept_samples(k, 1) for k in range(3)]
    assert split_rhat(two_param_sim, 1) == pytest.approx(split_rhat_loop(kept), rel=1e-12)


def test_too_few_draws():
    sim = SimulationResult.from_dict(sim_dict([[1.0, 2.0, 3.0], [2.0, 1.0, 3.0]]))
    with pytest.raises(DataError, match="at least 2 draws per half"):
        split_rhat(sim, 0)


@pytest.mark.parametrize("values", [(1.0, 2.0), (0.1, 0.1), (0.3, 0.3), (1e-3, 0.3)])
def test_constant_chains_raise(values):
    sim = SimulationResult.from_dict(sim_dict([np.full(8, v) for v in values]))
    with pytest.raises(NumericalError):
        split_rhat(sim, 0)
    with pytest.raises(NumericalError):
        split_rhat_matrix(np.column_stack([np.full(8, v) for v in values]))


def test_constant_halves_at_different_values_raise():
    # Each half is constant although the chain is not.
    chain = np.concatenate([np.full(4, 0.3), np.full(4, 0.7)])
    with pytest.raises(NumericalError):
        split_rhat_matrix(np.column_stack([chain, chain[::-1]]))


def test_index_validation(two_param_sim):
    with pytest.raises(IndexError):
        split_rhat(two_param_sim, 2)
    with pytest.raises(IndexError):
        two_param_sim.kept_samples(two_param_sim.num_chains(), 0)


def test_idempotent(two_param_sim):
    assert split_rhat(two_param_sim, 0) == split_rhat(two_param_sim, 0)


def test_ess_and_split_rhat(two_param_sim):
    ess, rhat = ess_and_split_rhat(two_param_sim, 0)
    assert ess > 0
    assert rhat == split_rhat(two_param_sim, 0)
