import numpy as np
import pytest

from chaindiag.autocovariance import DirectAutocovariance, FFTAutocovariance
from chaindiag.diagnostics import effective_sample_size, effective_sample_size_matrix
from chaindiag.exceptions import DataError, NumericalError
from chaindiag.simulation import SimulationResult

from ..utils.mock_data import ar1_chains, iid_chains, sim_dict
from ..utils.test_helpers import effective_sample_size_loop

FFT = FFTAutocovariance()


def test_matches_loop_reference_on_equal_chains():
    draws = ar1_chains(n_chains=3, n_samples=200, phi=0.5, seed=1)
    sim = SimulationResult.from_draws(draws)
    expected = effective_sample_size_loop([draws[:, k] for k in range(3)])
    assert effective_sample_size(sim, 0, backend=FFT) == pytest.approx(expected, rel=1e-9)


def test_matches_loop_reference_on_jagged_chains():
    chains = [ar1_chains(1, n, phi=0.6, seed=s)[:, 0] for n, s in ((150, 1), (180, 2), (163, 3))]
    warmup = [10, 25, 0]
    sim = SimulationResult.from_dict(sim_dict(chains, warmup2=warmup))
    kept = [c[w:] for c, w in zip(chains, warmup)]
    assert effective_sample_size(sim, 0, backend=FFT) == pytest.approx(
        effective_sample_size_loop(kept), rel=1e-9
    )


def test_chain_variance_uses_own_length():
    # The longer chain is bias-corrected with its own length even though
    # only the shortest length enters the lag scan, so extending it changes
    # the estimate.
    base = ar1_chains(n_chains=2, n_samples=120, phi=0.4, seed=9)
    extra = np.random.default_rng(10).normal(size=60)
    short = SimulationResult.from_dict(sim_dict([base[:, 0], base[:, 1]]))
    jagged = SimulationResult.from_dict(sim_dict([base[:, 0], np.concatenate([base[:, 1], extra])]))
    expected = effective_sample_size_loop([base[:, 0], np.concatenate([base[:, 1], extra])])
    assert effective_sample_size(jagged, 0, backend=FFT) == pytest.approx(expected, rel=1e-9)
    assert effective_sample_size(jagged, 0, backend=FFT) != effective_sample_size(short, 0, backend=FFT)


def test_bounded_for_positively_correlated_chains(ar1_sim):
    ess = effective_sample_size(ar1_sim, 0, backend=FFT)
    m, n = ar1_sim.num_chains(), min(ar1_sim.kept_counts())
    assert 0 < ess <= m * n
    # AR(1) with phi=0.7 has ESS / N close to (1 - phi) / (1 + phi) ~ 0.18
    assert 0.1 * m * n < ess < 0.3 * m * n


def test_iid_chains_are_close_to_total_draws(iid_sim):
    ess = effective_sample_size(iid_sim, 0, backend=FFT)
    total = iid_sim.num_chains() * min(iid_sim.kept_counts())
    assert ess == pytest.approx(total, rel=0.15)


def test_fft_and_direct_backends_agree():
    sim = SimulationResult.from_draws(ar1_chains(n_chains=2, n_samples=300, seed=4))
    assert effective_sample_size(sim, 0, backend=FFT) == pytest.approx(
        effective_sample_size(sim, 0, backend=DirectAutocovariance()), rel=1e-9
    )


def test_idempotent(ar1_sim):
    assert effective_sample_size(ar1_sim, 0, backend=FFT) == effective_sample_size(ar1_sim, 0, backend=FFT)


def test_default_backend_from_config(mock_config, ar1_sim):
    assert effective_sample_size(ar1_sim, 0) == effective_sample_size(ar1_sim, 0, backend=FFT)


def test_single_chain():
    sim = SimulationResult.from_draws(ar1_chains(n_chains=1, n_samples=500, seed=2))
    ess = effective_sample_size(sim, 0, backend=FFT)
    assert 0 < ess <= 500


def test_two_draws_per_chain():
    sim = SimulationResult.from_dict(sim_dict([[0.0, 1.0], [1.0, 3.0]]))
    expected = effective_sample_size_loop([[0.0, 1.0], [1.0, 3.0]])
    assert effective_sample_size(sim, 0, backend=FFT) == pytest.approx(expected, rel=1e-12)


def test_param_index_out_of_range(ar1_sim):
    with pytest.raises(IndexError):
        effective_sample_size(ar1_sim, ar1_sim.num_params(), backend=FFT)


def test_single_kept_draw_raises():
    sim = SimulationResult.from_dict(sim_dict([[1.0, 2.0, 3.0], [1.0, 2.0, 3.0]], warmup2=[0, 2]))
    with pytest.raises(DataError, match="at least 2"):
        effective_sample_size(sim, 0, backend=FFT)


def test_empty_kept_slice_raises():
    sim = SimulationResult.from_dict(sim_dict([[1.0, 2.0, 3.0], [1.0, 2.0, 3.0]], warmup2=[0, 3]))
    with pytest.raises(DataError, match="no draws after warmup"):
        effective_sample_size(sim, 0, backend=FFT)


@pytest.mark.parametrize("value", [2.0, 0.1, 0.3, 1e-3])
@pytest.mark.parametrize("backend", [FFT, DirectAutocovariance()], ids=["fft", "direct"])
def test_constant_chains_raise(value, backend):
    draws = np.full((10, 2), value)
    with pytest.raises(NumericalError):
        effective_sample_size(SimulationResult.from_draws(draws), 0, backend=backend)
    with pytest.raises(NumericalError):
        effective_sample_size_matrix(draws, backend=backend)


def test_constant_chains_at_different_values_are_defined():
    draws = np.column_stack([np.full(10, 0.3), np.full(10, 0.7)])
    assert np.isfinite(effective_sample_size_matrix(draws, backend=FFT))


def test_matrix_form_on_iid_draws():
    draws = iid_chains(n_chains=4, n_samples=2000, seed=8)
    ess = effective_sample_size_matrix(draws, backend=FFT)
    assert ess == pytest.approx(4 * 2000, rel=0.15)


def test_matrix_form_stops_at_first_negative_autocorrelation():
    # Alternating draws have a negative lag-1 autocorrelation, so no lag is
    # summed and the estimate is the total number of draws.
    draws = np.tile(np.array([[1.0], [-1.0]]), (50, 2)) + np.linspace(0, 0.01, 100)[:, None]
    assert effective_sample_size_matrix(draws, backend=FFT) == pytest.approx(200.0)


def test_matrix_form_correlated_is_smaller():
    draws = ar1_chains(n_chains=4, n_samples=2000, phi=0.8, seed=6)
    assert effective_sample_size_matrix(draws, backend=FFT) < 0.3 * 4 * 2000


def test_matrix_form_rejects_bad_shape():
    with pytest.raises(DataError):
        effective_sample_size_matrix(np.zeros(5), backend=FFT)
