# ---------------------------------------------------------------------------
# phenofit.diagnostics — Convergence checks and posterior summaries
# ---------------------------------------------------------------------------
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import arviz as az
import numpy as np
import polars as pl

from .config import Pooling
from .model import hyper_var_names

logger = logging.getLogger(__name__)

R_HAT_MAX = 1.01
ESS_MIN = 400


# =========================================================================
# Convergence
# =========================================================================


@dataclass
class ConvergenceReport:
    """Outcome of the sampler health checks.

    ``r_hat_bad`` and ``ess_bad`` map parameter labels to the offending
    statistic.
    """

    divergences: int
    r_hat_bad: dict[str, float] = field(default_factory=dict)
    ess_bad: dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.divergences == 0 and not self.r_hat_bad and not self.ess_bad

    def describe(self) -> str:
        if self.ok:
            return f"All parameters converged (R-hat <= {R_HAT_MAX}, ESS_bulk >= {ESS_MIN})"
        parts = []
        if self.divergences:
            parts.append(f"{self.divergences} divergent transitions")
        if self.r_hat_bad:
            parts.append(f"R-hat too high for {', '.join(sorted(self.r_hat_bad))}")
        if self.ess_bad:
            parts.append(f"ESS too low for {', '.join(sorted(self.ess_bad))}")
        return "; ".join(parts)


def check_convergence(
    idata: az.InferenceData,
    pooling: Pooling = Pooling.INTERCEPT_SLOPE,
    r_hat_max: float = R_HAT_MAX,
    ess_min: float = ESS_MIN,
) -> ConvergenceReport:
    """Inspect divergences, R-hat and bulk ESS.

    Never raises on poor convergence: the report is logged as a warning and
    returned for the caller to act on.
    """
    divs = 0
    if hasattr(idata, "sample_stats") and "diverging" in idata.sample_stats:
        divs = int(idata.sample_stats.diverging.sum().values)

    var_names = hyper_var_names(pooling) + ["alpha", "beta"]
    summary = az.summary(idata, var_names=var_names, kind="diagnostics")

    r_hat = summary["r_hat"]
    ess = summary["ess_bulk"]
    report = ConvergenceReport(
        divergences=divs,
        r_hat_bad={str(k): float(v) for k, v in r_hat[r_hat > r_hat_max].items()},
        ess_bad={str(k): float(v) for k, v in ess[ess < ess_min].items()},
    )
    if not report.ok:
        logger.warning(f"Sampler did not converge cleanly: {report.describe()}")
    return report


# =========================================================================
# Posterior summaries
# =========================================================================


def summarize_posterior(
    idata: az.InferenceData,
    var_names: list[str],
    quantiles: tuple[float, ...] = (0.025, 0.5, 0.975),
) -> pl.DataFrame:
    """Mean, sd and quantiles per parameter.

    Vector parameters over the ``group`` dimension are expanded into one
    row per group, labelled ``name[group]``.
    """
    rows: list[dict] = []
    for name in var_names:
        da = idata.posterior[name]
        vals = da.values.reshape(-1, *da.shape[2:])  # (draws, ...)
        if vals.ndim == 1:
            labels = [name]
            vals = vals[:, None]
        else:
            dim = da.dims[2]
            labels = [f"{name}[{c}]" for c in da.coords[dim].values]
        qs = np.quantile(vals, quantiles, axis=0)
        for k, label in enumerate(labels):
            row = {
                "parameter": label,
                "mean": float(vals[:, k].mean()),
                "sd": float(vals[:, k].std(ddof=1)),
            }
            for q, qv in zip(quantiles, qs[:, k]):
                row[f"q{q * 100:g}"] = float(qv)
            rows.append(row)
    return pl.DataFrame(rows)


def print_diagnostics(
    idata: az.InferenceData,
    pooling: Pooling = Pooling.INTERCEPT_SLOPE,
    report: ConvergenceReport | None = None,
) -> ConvergenceReport:
    """Print sampling diagnostics and the hyperparameter summary.

    Pass the *report* already computed by :func:`phenofit.sampling.fit` to
    avoid re-running the checks.
    """
    print("=" * 72)
    print("SAMPLING DIAGNOSTICS")
    print("=" * 72)

    if report is None:
        report = check_convergence(idata, pooling)
    print(f"Divergences: {report.divergences}")
    for pname, val in report.r_hat_bad.items():
        print(f"  ** {pname}: R-hat = {val:.4f}")
    for pname, val in report.ess_bad.items():
        print(f"  ** {pname}: ESS = {val:.0f}")
    print(report.describe())

    print("\n" + "=" * 72)
    print("HYPERPARAMETER SUMMARY")
    print("=" * 72)
    summary = summarize_posterior(idata, hyper_var_names(pooling))
    with pl.Config(tbl_rows=-1, float_precision=3):
        print(summary)
    return report
