# ---------------------------------------------------------------------------
# phenofit.model — PyMC model specification
# ---------------------------------------------------------------------------
"""Hierarchical linear regression of event day on year with partial pooling
across groups.  One builder covers both pooling variants."""

from __future__ import annotations

import numpy as np
import pymc as pm

from .config import DEFAULT_PRIORS, Pooling, PriorConfig


def validate_data(data: dict) -> None:
    """Fail fast when declared counts and supplied arrays disagree.

    Raises
    ------
    ValueError
        On length mismatches, out-of-range group indices, or non-finite
        predictor / response values.
    """
    N, J = data["N"], data["J"]
    group_idx = np.asarray(data["group_idx"])
    year = np.asarray(data["year"])
    y = np.asarray(data["y"])

    for name, arr in (("group_idx", group_idx), ("year", year), ("y", y)):
        if arr.shape != (N,):
            raise ValueError(f"{name} has shape {arr.shape}, declared N = {N}")
    if len(data["groups"]) != J:
        raise ValueError(f"{len(data['groups'])} group labels, declared J = {J}")
    if N == 0 or J == 0:
        raise ValueError(f"Empty data (N={N}, J={J})")
    if group_idx.min() < 0 or group_idx.max() >= J:
        raise ValueError(
            f"group_idx must lie in [0, {J}), got [{group_idx.min()}, {group_idx.max()}]"
        )
    if not (np.all(np.isfinite(year)) and np.all(np.isfinite(y))):
        raise ValueError("year and y must be finite")


def build_model(
    data: dict,
    pooling: Pooling = Pooling.INTERCEPT_SLOPE,
    priors: PriorConfig | None = None,
) -> pm.Model:
    """Build the hierarchical PyMC model.

    Parameters
    ----------
    data : dict
        Output of :func:`phenofit.data.load_data` or
        :func:`phenofit.simulate.simulate_dataset`.
    pooling : Pooling
        ``SLOPE`` partially pools slopes only; ``INTERCEPT_SLOPE`` pools
        intercepts as well.
    priors : PriorConfig, optional
        Defaults to :data:`phenofit.config.DEFAULT_PRIORS`.

    Notes
    -----
    Pooled effects use the non-centred form
    ``beta = mu_beta + sigma_beta * z_beta`` with ``z_beta ~ Normal(0, 1)``.
    """
    validate_data(data)
    pooling = Pooling(pooling)
    if priors is None:
        priors = DEFAULT_PRIORS

    group_idx = np.array(data["group_idx"], dtype=int)
    year = np.array(data["year"], dtype=float)
    coords = {"group": data["groups"], "obs": np.arange(data["N"])}

    with pm.Model(coords=coords) as model:

        # =============================================================
        # Intercepts
        # =============================================================

        if pooling.pools_intercept:
            mu_alpha = pm.Normal("mu_alpha", mu=priors.mu_alpha_mu, sigma=priors.mu_alpha_sigma)
            sigma_alpha = pm.HalfNormal("sigma_alpha", sigma=priors.sigma_alpha_sigma)
            z_alpha = pm.Normal("z_alpha", 0, 1, dims="group")
            alpha = pm.Deterministic("alpha", mu_alpha + sigma_alpha * z_alpha, dims="group")
        else:
            alpha = pm.Normal(
                "alpha", mu=priors.alpha_mu, sigma=priors.alpha_sigma, dims="group"
            )

        # =============================================================
        # Slopes (always pooled)
        # =============================================================

        mu_beta = pm.Normal("mu_beta", mu=priors.mu_beta_mu, sigma=priors.mu_beta_sigma)
        sigma_beta = pm.HalfNormal("sigma_beta", sigma=priors.sigma_beta_sigma)
        z_beta = pm.Normal("z_beta", 0, 1, dims="group")
        beta = pm.Deterministic("beta", mu_beta + sigma_beta * z_beta, dims="group")

        # =============================================================
        # Likelihood
        # =============================================================

        sigma_y = pm.HalfNormal("sigma_y", sigma=priors.sigma_y_sigma)
        mu = alpha[group_idx] + beta[group_idx] * year
        y_obs = np.array(data["y"], dtype=float)
        pm.Normal("y_obs", mu=mu, sigma=sigma_y, observed=y_obs, dims="obs")

    return model


def hyper_var_names(pooling: Pooling) -> list[str]:
    """Population-level variable names present for *pooling*."""
    names = ["mu_beta", "sigma_beta", "sigma_y"]
    if Pooling(pooling).pools_intercept:
        names = ["mu_alpha", "sigma_alpha"] + names
    return names
