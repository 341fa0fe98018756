# ---------------------------------------------------------------------------
# phenofit.recovery — Parameter recovery from simulated data
# ---------------------------------------------------------------------------
"""Compare known generative parameters with their posterior estimates, and
repeat simulate-fit cycles to measure credible-interval coverage."""

from __future__ import annotations

import dataclasses
import logging

import numpy as np
import polars as pl
from scipy import stats as sp_stats

from .config import AnalysisConfig, Hyperparameters
from .sampling import LIGHT_SAMPLER_KWARGS, PosteriorDraws, fit
from .simulate import GroupEffects, estimate_group_slopes, make_design, simulate_dataset

logger = logging.getLogger(__name__)


def compare_given_estimated(
    truth: Hyperparameters,
    draws: PosteriorDraws,
    effects: GroupEffects | None = None,
    interval: float = 0.95,
) -> pl.DataFrame:
    """Given-vs-estimated table with equal-tailed credible intervals.

    Intercept hyperparameters are omitted when the fit did not pool
    intercepts.  Per-group rows are added when *effects* is supplied.

    Returns
    -------
    pl.DataFrame
        Columns ``parameter, given, mean, lower, upper, covered``.
    """
    tail = (1.0 - interval) / 2.0
    rows: list[dict] = []

    def _row(label: str, given: float, samples: np.ndarray) -> None:
        lo, hi = np.quantile(samples, [tail, 1.0 - tail])
        rows.append(
            {
                "parameter": label,
                "given": float(given),
                "mean": float(samples.mean()),
                "lower": float(lo),
                "upper": float(hi),
                "covered": bool(lo <= given <= hi),
            }
        )

    for name, given in truth.as_dict().items():
        samples = getattr(draws, name)
        if samples is None:
            continue
        _row(name, given, samples)

    if effects is not None:
        if effects.n_groups != draws.n_groups:
            raise ValueError(
                f"effects cover {effects.n_groups} groups, posterior has {draws.n_groups}"
            )
        for j in range(effects.n_groups):
            _row(f"alpha[{j}]", effects.alpha[j], draws.alpha[:, j])
        for j in range(effects.n_groups):
            _row(f"beta[{j}]", effects.beta[j], draws.beta[:, j])

    return pl.DataFrame(rows)


def slope_recovery_correlation(data: dict, effects: GroupEffects) -> float:
    """Pearson correlation between true slopes and per-group OLS slopes."""
    ols = estimate_group_slopes(data)
    mask = np.isfinite(ols)
    if mask.sum() < 3:
        raise ValueError("Need at least three groups with estimable slopes")
    r, _ = sp_stats.pearsonr(effects.beta[mask], ols[mask])
    return float(r)


def run_recovery_study(
    truth: Hyperparameters,
    n_cycles: int,
    n_groups: int,
    min_obs: int,
    max_obs: int,
    n_years: int = 50,
    config: AnalysisConfig | None = None,
    interval: float = 0.95,
) -> pl.DataFrame:
    """Repeat simulate-fit cycles and tabulate hyperparameter coverage.

    Each cycle draws a fresh unbalanced design, group effects and
    observations from *truth*, fits the model and records whether each
    hyperparameter lies inside its credible interval.

    Returns
    -------
    pl.DataFrame
        One row per hyperparameter with ``coverage`` (fraction of cycles
        covered), ``mean_bias`` and ``n_unconverged``.
    """
    truth.validate()
    if config is None:
        config = AnalysisConfig(sampler_kwargs=LIGHT_SAMPLER_KWARGS)

    cycle_seqs = np.random.SeedSequence(config.seed).spawn(n_cycles)
    records: list[pl.DataFrame] = []

    for cycle, seq in enumerate(cycle_seqs):
        print(f"Recovery cycle {cycle + 1}/{n_cycles}…")
        rng = np.random.default_rng(seq)
        group_idx, year = make_design(n_groups, min_obs, max_obs, n_years, rng)
        data, _ = simulate_dataset(truth, group_idx, year, rng, n_groups=n_groups)

        cycle_cfg = dataclasses.replace(config, seed=int(seq.generate_state(1)[0]))
        _, draws = fit(data, cycle_cfg)
        if not draws.converged:
            logger.warning(f"Recovery cycle {cycle + 1} did not converge; coverage includes it")
        table = compare_given_estimated(truth, draws, interval=interval)
        records.append(
            table.with_columns(
                pl.lit(cycle).alias("cycle"),
                pl.lit(draws.converged).alias("converged"),
            )
        )

    cycles = pl.concat(records)
    return (
        cycles.group_by("parameter", maintain_order=True)
        .agg(
            pl.col("given").first(),
            pl.col("covered").mean().alias("coverage"),
            (pl.col("mean") - pl.col("given")).mean().alias("mean_bias"),
            (~pl.col("converged")).sum().alias("n_unconverged"),
        )
    )


def print_recovery_table(table: pl.DataFrame) -> None:
    """Print a given-vs-estimated table."""
    print("\n" + "=" * 72)
    print("PARAMETER RECOVERY")
    print("=" * 72)
    with pl.Config(tbl_rows=-1, float_precision=3):
        print(table)
    if "covered" in table.columns:
        n_cov = int(table["covered"].sum())
        print(f"\n{n_cov}/{table.height} given values inside their credible intervals")
