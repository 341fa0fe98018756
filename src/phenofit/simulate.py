# ---------------------------------------------------------------------------
# phenofit.simulate — Generative simulation from fixed parameters
# ---------------------------------------------------------------------------
"""Draw group effects from hyperparameters and simulate event days over a
(group, year) design.

    alpha_j ~ Normal(mu_alpha, sigma_alpha)
    beta_j  ~ Normal(mu_beta, sigma_beta)
    y_i     = alpha[g_i] + beta[g_i] * year_i + Normal(0, sigma_y)

All functions are pure apart from consuming the supplied generator.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import polars as pl

from .config import Hyperparameters
from .data import build_data


@dataclass(frozen=True)
class GroupEffects:
    """Per-group intercepts and slopes."""

    alpha: np.ndarray
    beta: np.ndarray

    def __post_init__(self) -> None:
        alpha = np.array(self.alpha, dtype=float)
        beta = np.array(self.beta, dtype=float)
        if alpha.ndim != 1 or alpha.shape != beta.shape:
            raise ValueError(
                f"alpha and beta must be 1-D of equal length, got {alpha.shape} and {beta.shape}"
            )
        alpha.flags.writeable = False
        beta.flags.writeable = False
        object.__setattr__(self, "alpha", alpha)
        object.__setattr__(self, "beta", beta)

    @property
    def n_groups(self) -> int:
        return len(self.alpha)


def draw_group_effects(
    hyper: Hyperparameters, n_groups: int, rng: np.random.Generator
) -> GroupEffects:
    """Draw one (intercept, slope) pair per group, independently."""
    hyper.validate()
    if n_groups < 1:
        raise ValueError(f"n_groups must be >= 1, got {n_groups}")
    alpha = rng.normal(hyper.mu_alpha, hyper.sigma_alpha, size=n_groups)
    beta = rng.normal(hyper.mu_beta, hyper.sigma_beta, size=n_groups)
    return GroupEffects(alpha=alpha, beta=beta)


def simulate_observations(
    effects: GroupEffects,
    group_idx: np.ndarray,
    year: np.ndarray,
    sigma_y: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """One simulated response per (group, year) pair."""
    if not np.isfinite(sigma_y) or sigma_y <= 0:
        raise ValueError(f"sigma_y must be a positive finite scale, got {sigma_y!r}")
    group_idx = np.asarray(group_idx)
    year = np.asarray(year, dtype=float)
    if group_idx.shape != year.shape or group_idx.ndim != 1:
        raise ValueError(
            f"group_idx and year must be 1-D of equal length, "
            f"got {group_idx.shape} and {year.shape}"
        )
    if group_idx.size and (group_idx.min() < 0 or group_idx.max() >= effects.n_groups):
        raise ValueError(
            f"group_idx out of range for {effects.n_groups} groups "
            f"(min={group_idx.min()}, max={group_idx.max()})"
        )
    mu = effects.alpha[group_idx] + effects.beta[group_idx] * year
    return mu + rng.normal(0.0, sigma_y, size=mu.shape)


def make_design(
    n_groups: int,
    min_obs: int,
    max_obs: int,
    n_years: int,
    rng: np.random.Generator,
) -> tuple[np.ndarray, np.ndarray]:
    """Unbalanced design: each group observed in a random subset of years.

    Per-group counts are uniform on ``[min_obs, max_obs]``; years are drawn
    without replacement from ``0 .. n_years - 1``.

    Returns
    -------
    (group_idx, year)
    """
    if n_groups < 1:
        raise ValueError(f"n_groups must be >= 1, got {n_groups}")
    if not 1 <= min_obs <= max_obs:
        raise ValueError(f"Need 1 <= min_obs <= max_obs, got {min_obs}, {max_obs}")
    if max_obs > n_years:
        raise ValueError(f"max_obs ({max_obs}) exceeds the number of years ({n_years})")

    counts = rng.integers(min_obs, max_obs + 1, size=n_groups)
    group_idx = np.repeat(np.arange(n_groups), counts)
    year = np.concatenate(
        [np.sort(rng.choice(n_years, size=c, replace=False)) for c in counts]
    ).astype(float)
    return group_idx, year


def simulate_dataset(
    hyper: Hyperparameters,
    group_idx: np.ndarray,
    year: np.ndarray,
    rng: np.random.Generator,
    n_groups: int | None = None,
    effects: GroupEffects | None = None,
) -> tuple[dict, GroupEffects]:
    """Simulate a full dataset over a design and wrap it as model data.

    Group effects are drawn from *hyper* unless *effects* is given.  Group
    labels are zero-padded indices so that sorted label order matches the
    index order.

    Returns
    -------
    (data, effects)
        ``data`` is the dict produced by :func:`phenofit.data.build_data`.
    """
    hyper.validate()
    group_idx = np.asarray(group_idx, dtype=int)
    if n_groups is None:
        n_groups = int(group_idx.max()) + 1 if effects is None else effects.n_groups
    if effects is None:
        effects = draw_group_effects(hyper, n_groups, rng)
    elif effects.n_groups != n_groups:
        raise ValueError(f"effects cover {effects.n_groups} groups, expected {n_groups}")

    y = simulate_observations(effects, group_idx, year, hyper.sigma_y, rng)

    width = len(str(n_groups - 1))
    labels = [f"g{j:0{width}d}" for j in range(n_groups)]
    frame = pl.DataFrame(
        {
            "group": [labels[j] for j in group_idx],
            "year": np.asarray(year, dtype=float),
            "y": y,
        }
    )
    data = build_data(frame, ref_year=0)
    # Groups with no rows would drop out of the label set
    if data["J"] != n_groups:
        raise ValueError(
            f"Design covers {data['J']} of {n_groups} groups; every group needs an observation"
        )
    return data, effects


def estimate_group_slopes(data: dict) -> np.ndarray:
    """Per-group ordinary least-squares slopes of ``y`` on ``year``.

    NaN for groups with fewer than two distinct years.
    """
    group_idx, year, y = data["group_idx"], data["year"], data["y"]
    slopes = np.full(data["J"], np.nan)
    for j in range(data["J"]):
        m = group_idx == j
        x = year[m]
        if np.unique(x).size < 2:
            continue
        xc = x - x.mean()
        slopes[j] = np.dot(xc, y[m] - y[m].mean()) / np.dot(xc, xc)
    return slopes
