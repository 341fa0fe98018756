#!/usr/bin/env python
# ---------------------------------------------------------------------------
# phenofit_analysis.py — Thin runner for the phenofit package
# ---------------------------------------------------------------------------
"""Simulate → fit → check recovery → fit empirical data → retrodictive check,
for each pooling variant.

Usage:
    python phenofit_analysis.py [path/to/observations.csv]
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import numpy as np

# Allow running from repo root without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from phenofit.config import (
    DATA_DIR,
    TRUE_HYPERPARAMETERS,
    AnalysisConfig,
    Pooling,
)
from phenofit.data import load_data
from phenofit.diagnostics import print_diagnostics
from phenofit.plots import plot_given_vs_estimated, plot_retrodictive
from phenofit.recovery import (
    compare_given_estimated,
    print_recovery_table,
    slope_recovery_correlation,
)
from phenofit.retrodictive import run_retrodictive_check
from phenofit.sampling import fit
from phenofit.simulate import make_design, simulate_dataset


def main(data_path: Path | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if data_path is None:
        data_path = DATA_DIR / "phenology.csv"

    for pooling in Pooling:
        config = AnalysisConfig(pooling=pooling)
        out_dir = config.output_dir / pooling.value
        out_dir.mkdir(parents=True, exist_ok=True)
        rng = np.random.default_rng(config.seed)

        print("\n" + "#" * 72)
        print(f"# Pooling variant: {pooling.value}")
        print("#" * 72)

        # 1. Simulate from known truth -------------------------------------------
        group_idx, year = make_design(n_groups=100, min_obs=5, max_obs=40, n_years=50, rng=rng)
        sim_data, effects = simulate_dataset(TRUE_HYPERPARAMETERS, group_idx, year, rng)
        r = slope_recovery_correlation(sim_data, effects)
        print(f"Simulated {sim_data['N']} obs over {sim_data['J']} groups; "
              f"OLS slope correlation with truth: {r:.3f}")

        # 2. Fit simulated data and check recovery -------------------------------
        sim_idata, sim_draws = fit(sim_data, config)
        print_diagnostics(sim_idata, pooling, report=sim_draws.convergence)
        table = compare_given_estimated(TRUE_HYPERPARAMETERS, sim_draws, effects)
        print_recovery_table(table.filter(~table["parameter"].str.contains(r"\[")))
        plot_given_vs_estimated(table, out_dir / "given_vs_estimated.png")

        # 3. Fit empirical data --------------------------------------------------
        if not data_path.exists():
            print(f"\nNo empirical data at {data_path}; skipping empirical fit.")
            continue
        data = load_data(data_path, ref_year=config.ref_year)
        idata, draws = fit(data, config)
        print_diagnostics(idata, pooling, report=draws.convergence)

        # 4. Retrodictive check --------------------------------------------------
        result = run_retrodictive_check(draws, data, n_reps=config.n_reps, seed=config.seed)
        print(result.summary())
        plot_retrodictive(result, out_dir / "retrodictive_sd.png")

        # 5. Save InferenceData --------------------------------------------------
        idata.to_netcdf(str(out_dir / "idata.nc"))
        print(f"\nInferenceData saved to {out_dir / 'idata.nc'}")

    print("\n" + "=" * 72)
    print("phenofit pipeline complete.")
    print("=" * 72)


if __name__ == "__main__":
    main(Path(sys.argv[1]) if len(sys.argv) > 1 else None)
