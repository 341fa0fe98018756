# ---------------------------------------------------------------------------
# phenofit.plots — Retrodictive and recovery figures
# ---------------------------------------------------------------------------
from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import polars as pl  # noqa: E402

from .retrodictive import RetrodictiveResult  # noqa: E402


# =========================================================================
# Retrodictive check
# =========================================================================


def plot_retrodictive(
    result: RetrodictiveResult, path: Path, stat_label: str = "Per-group SD (days)"
) -> Path:
    """Simulated vs observed statistic: pooled histogram and per-group tails."""
    sim_pooled, obs_pooled = result.pooled()
    tail = result.tail_probabilities()

    fig, axes = plt.subplots(1, 2, figsize=(14, 4.5))

    ax = axes[0]
    ax.hist(sim_pooled, bins=50, density=True, alpha=0.5, color="steelblue",
            label="Retrodicted")
    ax.axvline(obs_pooled, color="black", lw=2, ls="--", label=f"Obs: {obs_pooled:.2f}")
    p = float(np.mean(sim_pooled >= obs_pooled))
    ax.set_xlabel(f"Mean {stat_label.lower()} across groups")
    ax.set_title(f"Pooled statistic (p={min(p, 1 - p):.3f})")
    ax.legend(fontsize=7)

    ax = axes[1]
    order = np.argsort(result.observed)
    lo, hi = np.nanpercentile(result.simulated[:, order], [5, 95], axis=0)
    x = np.arange(len(order))
    ax.fill_between(x, lo, hi, alpha=0.3, color="steelblue", label="90% retrodicted")
    extreme = (tail[order] < 0.025) | (tail[order] > 0.975)
    ax.scatter(x[~extreme], result.observed[order][~extreme], s=8, c="black",
               label="Observed")
    ax.scatter(x[extreme], result.observed[order][extreme], s=12, c="red",
               label="Observed (outside 95%)")
    ax.set_xlabel("Group (sorted by observed statistic)")
    ax.set_ylabel(stat_label)
    ax.set_title("Per-group statistic")
    ax.legend(fontsize=7)

    title = "Retrodictive Check"
    if not result.reliable:
        title += " (fit did not converge: unreliable)"
    fig.suptitle(title, fontsize=13, fontweight="bold")
    plt.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {path}")
    return path


# =========================================================================
# Parameter recovery
# =========================================================================


def plot_given_vs_estimated(table: pl.DataFrame, path: Path) -> Path:
    """Given value against posterior mean with interval bars, per parameter family."""
    families = {
        "hyperparameters": table.filter(~pl.col("parameter").str.contains(r"\[")),
        "alpha": table.filter(pl.col("parameter").str.starts_with("alpha[")),
        "beta": table.filter(pl.col("parameter").str.starts_with("beta[")),
    }
    families = {k: v for k, v in families.items() if v.height > 0}

    fig, axes = plt.subplots(1, len(families), figsize=(5.5 * len(families), 5), squeeze=False)

    for ax, (label, sub) in zip(axes[0], families.items()):
        given = sub["given"].to_numpy()
        mean = sub["mean"].to_numpy()
        err = np.vstack([mean - sub["lower"].to_numpy(), sub["upper"].to_numpy() - mean])
        colors = np.where(sub["covered"].to_numpy(), "steelblue", "red")
        ax.errorbar(given, mean, yerr=err, fmt="none", ecolor="lightgray", lw=0.8, zorder=1)
        ax.scatter(given, mean, s=14, c=colors, zorder=2)
        lims = [min(given.min(), sub["lower"].min()), max(given.max(), sub["upper"].max())]
        ax.plot(lims, lims, "k--", lw=0.8)
        if label == "hyperparameters":
            for name, gx, my in zip(sub["parameter"], given, mean):
                ax.annotate(name, (gx, my), fontsize=7, xytext=(3, 3),
                            textcoords="offset points")
        ax.set_xlabel("Given")
        ax.set_ylabel("Posterior mean")
        ax.set_title(label)

    fig.suptitle("Given vs Estimated Parameters", fontsize=13, fontweight="bold")
    plt.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {path}")
    return path
