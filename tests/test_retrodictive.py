"""Tests for phenofit.retrodictive — posterior re-simulation checks."""

import numpy as np
import pytest

from phenofit.config import TRUE_HYPERPARAMETERS, Pooling
from phenofit.retrodictive import (
    Resample,
    RetrodictiveResult,
    _regenerate_effects,
    group_mean,
    group_sd,
    run_retrodictive_check,
)
from phenofit.sampling import PosteriorDraws
from phenofit.simulate import make_design, simulate_dataset


def _make_data(n_groups: int = 10, seed: int = 0) -> dict:
    rng = np.random.default_rng(seed)
    group_idx, year = make_design(n_groups, 5, 40, 50, rng)
    data, _ = simulate_dataset(TRUE_HYPERPARAMETERS, group_idx, year, rng)
    return data


def _make_draws(n_draws: int = 20, n_groups: int = 10, pooling=Pooling.INTERCEPT_SLOPE,
                converged: bool = True) -> PosteriorDraws:
    """Posterior draws concentrated tightly on the true hyperparameters."""
    rng = np.random.default_rng(1)
    hp = TRUE_HYPERPARAMETERS
    extra = {}
    if Pooling(pooling).pools_intercept:
        extra = dict(
            mu_alpha=rng.normal(hp.mu_alpha, 0.5, n_draws),
            sigma_alpha=np.abs(rng.normal(hp.sigma_alpha, 0.5, n_draws)),
        )
    return PosteriorDraws(
        mu_beta=rng.normal(hp.mu_beta, 0.05, n_draws),
        sigma_beta=np.abs(rng.normal(hp.sigma_beta, 0.05, n_draws)),
        sigma_y=np.abs(rng.normal(hp.sigma_y, 0.1, n_draws)),
        alpha=rng.normal(hp.mu_alpha, hp.sigma_alpha, (n_draws, n_groups)),
        beta=rng.normal(hp.mu_beta, hp.sigma_beta, (n_draws, n_groups)),
        pooling=pooling,
        converged=converged,
        **extra,
    )


class TestGroupStatistics:
    """Tests for the per-group summary statistics."""

    def test_group_sd_matches_numpy(self):
        rng = np.random.default_rng(2)
        group_idx = np.repeat([0, 1, 2], [5, 40, 12])
        y = rng.normal(0, 3, len(group_idx))
        sd = group_sd(y, group_idx, 3)
        for j in range(3):
            assert sd[j] == pytest.approx(np.std(y[group_idx == j], ddof=1))

    def test_group_sd_single_or_empty_group_is_nan(self):
        group_idx = np.array([0, 0, 1])
        sd = group_sd(np.array([1.0, 3.0, 5.0]), group_idx, 3)
        assert sd[0] == pytest.approx(np.sqrt(2.0))
        assert np.isnan(sd[1])
        assert np.isnan(sd[2])

    def test_group_mean(self):
        mean = group_mean(np.array([1.0, 3.0, 10.0]), np.array([0, 0, 1]), 3)
        np.testing.assert_allclose(mean[:2], [2.0, 10.0])
        assert np.isnan(mean[2])


class TestRunRetrodictiveCheck:
    """Tests for run_retrodictive_check."""

    def test_output_shapes(self):
        data = _make_data()
        result = run_retrodictive_check(_make_draws(), data, n_reps=15, seed=0)
        assert result.simulated.shape == (15, data['J'])
        assert result.observed.shape == (data['J'],)
        assert result.draw_index.shape == (15,)
        assert result.groups == data['groups']

    def test_fixed_seed_is_deterministic(self):
        data = _make_data()
        draws = _make_draws()
        a = run_retrodictive_check(draws, data, n_reps=30, seed=42)
        b = run_retrodictive_check(draws, data, n_reps=30, seed=42)
        np.testing.assert_array_equal(a.draw_index, b.draw_index)
        np.testing.assert_array_equal(a.simulated, b.simulated)

    def test_thread_count_does_not_change_result(self):
        data = _make_data()
        draws = _make_draws()
        serial = run_retrodictive_check(draws, data, n_reps=25, seed=7, n_jobs=1)
        threaded = run_retrodictive_check(draws, data, n_reps=25, seed=7, n_jobs=4)
        np.testing.assert_array_equal(serial.simulated, threaded.simulated)

    def test_different_seeds_differ(self):
        data = _make_data()
        draws = _make_draws()
        a = run_retrodictive_check(draws, data, n_reps=10, seed=1)
        b = run_retrodictive_check(draws, data, n_reps=10, seed=2)
        assert not np.array_equal(a.simulated, b.simulated)

    def test_more_reps_than_draws_with_replacement(self):
        data = _make_data()
        result = run_retrodictive_check(
            _make_draws(n_draws=10), data, n_reps=50, seed=0,
            resample=Resample.WITH_REPLACEMENT,
        )
        assert result.n_reps == 50
        assert result.draw_index.max() < 10
        assert len(np.unique(result.draw_index)) <= 10

    def test_more_reps_than_draws_capped(self):
        data = _make_data()
        result = run_retrodictive_check(
            _make_draws(n_draws=10), data, n_reps=50, seed=0, resample=Resample.CAP,
        )
        assert result.n_reps == 10
        assert sorted(result.draw_index.tolist()) == list(range(10))

    def test_cap_below_draw_count_uses_distinct_draws(self):
        data = _make_data()
        result = run_retrodictive_check(
            _make_draws(n_draws=20), data, n_reps=8, seed=0, resample='cap',
        )
        assert result.n_reps == 8
        assert len(np.unique(result.draw_index)) == 8

    def test_observed_statistic_from_data(self):
        data = _make_data()
        result = run_retrodictive_check(_make_draws(), data, n_reps=5, seed=0)
        np.testing.assert_allclose(result.observed, group_sd(data['y'], data['group_idx'], data['J']))

    def test_well_specified_model_matches_observed(self):
        """Draws centred on the truth reproduce the pooled noise level."""
        data = _make_data(n_groups=30)
        result = run_retrodictive_check(_make_draws(n_groups=30), data, n_reps=200, seed=3)
        sim, obs = result.pooled()
        assert np.quantile(sim, 0.005) < obs < np.quantile(sim, 0.995)

    def test_custom_statistic(self):
        data = _make_data()
        result = run_retrodictive_check(_make_draws(), data, statistic=group_mean, n_reps=5, seed=0)
        assert np.all(np.isfinite(result.simulated))

    def test_group_mismatch_raises(self):
        with pytest.raises(ValueError, match='groups'):
            run_retrodictive_check(_make_draws(n_groups=4), _make_data(n_groups=10), n_reps=5)

    def test_zero_reps_raises(self):
        with pytest.raises(ValueError, match='n_reps'):
            run_retrodictive_check(_make_draws(), _make_data(), n_reps=0)

    def test_unconverged_fit_flagged(self):
        result = run_retrodictive_check(
            _make_draws(converged=False), _make_data(), n_reps=5, seed=0
        )
        assert result.reliable is False


class TestRegenerateEffects:
    """Group effects are redrawn for every repetition."""

    def test_pooled_effects_are_fresh(self):
        draws = _make_draws()
        effects = _regenerate_effects(draws, 0, np.random.default_rng(0))
        assert effects.n_groups == draws.n_groups
        assert not np.array_equal(effects.alpha, draws.alpha[0])

    def test_slope_only_keeps_draw_intercepts(self):
        draws = _make_draws(pooling=Pooling.SLOPE)
        effects = _regenerate_effects(draws, 2, np.random.default_rng(0))
        np.testing.assert_array_equal(effects.alpha, draws.alpha[2])
        assert not np.array_equal(effects.beta, draws.beta[2])

    def test_slope_only_slopes_follow_draw_hyperparameters(self):
        n, j = 4, 2000
        draws = PosteriorDraws(
            mu_beta=np.full(n, 3.0), sigma_beta=np.full(n, 0.5), sigma_y=np.ones(n),
            alpha=np.zeros((n, j)), beta=np.zeros((n, j)), pooling=Pooling.SLOPE,
        )
        effects = _regenerate_effects(draws, 1, np.random.default_rng(0))
        assert effects.beta.mean() == pytest.approx(3.0, abs=0.05)
        assert effects.beta.std() == pytest.approx(0.5, abs=0.05)


class TestRetrodictiveResult:
    """Tests for the result accessors."""

    def _result(self) -> RetrodictiveResult:
        simulated = np.array([[1.0, 5.0, np.nan], [2.0, 6.0, np.nan], [3.0, 7.0, np.nan],
                              [4.0, 8.0, np.nan]])
        return RetrodictiveResult(
            draw_index=np.arange(4),
            simulated=simulated,
            observed=np.array([2.5, 100.0, np.nan]),
            groups=['a', 'b', 'c'],
            resample=Resample.WITH_REPLACEMENT,
        )

    def test_tail_probabilities(self):
        p = self._result().tail_probabilities()
        assert p[0] == pytest.approx(0.5)
        assert p[1] == pytest.approx(0.0)
        assert np.isnan(p[2])

    def test_pooled_ignores_nan_groups(self):
        sim, obs = self._result().pooled()
        np.testing.assert_allclose(sim, [3.0, 4.0, 5.0, 6.0])
        assert obs == pytest.approx(51.25)

    def test_summary_columns(self):
        summary = self._result().summary()
        assert summary.columns == ['group', 'observed', 'sim_mean', 'sim_q5', 'sim_q95', 'tail_prob']
        assert summary.height == 3
