# ---------------------------------------------------------------------------
# phenofit.sampling — MCMC sampling and posterior-draw extraction
# ---------------------------------------------------------------------------
from __future__ import annotations

import logging
from dataclasses import dataclass

import arviz as az
import numpy as np
import pymc as pm

from .config import AnalysisConfig, Hyperparameters, Pooling
from .diagnostics import ConvergenceReport, check_convergence
from .model import build_model

logger = logging.getLogger(__name__)

# Default sampling configuration (empirical fits)
DEFAULT_SAMPLER_KWARGS: dict = dict(
    draws=2000,
    tune=2000,
    chains=4,
    target_accept=0.95,
    return_inferencedata=True,
)

# Lighter configuration for repeated simulate-fit cycles
LIGHT_SAMPLER_KWARGS: dict = dict(
    draws=1000,
    tune=1000,
    chains=2,
    target_accept=0.95,
    return_inferencedata=True,
)

# Minimal configuration for smoke tests
TEST_SAMPLER_KWARGS: dict = dict(
    draws=300,
    tune=300,
    chains=2,
    cores=1,
    target_accept=0.9,
    return_inferencedata=True,
    progressbar=False,
)


def sample_model(
    model: pm.Model,
    sampler_kwargs: dict | None = None,
    seed: int | None = None,
) -> az.InferenceData:
    """Sample the model using nutpie (preferred) or PyMC NUTS.

    Parameters
    ----------
    model : pm.Model
        Compiled PyMC model.
    sampler_kwargs : dict, optional
        Override the default sampling configuration.  Use
        ``LIGHT_SAMPLER_KWARGS`` for recovery loops.
    seed : int, optional
        Passed to the sampler as ``random_seed``.
    """
    if sampler_kwargs is None:
        sampler_kwargs = DEFAULT_SAMPLER_KWARGS
    kwargs = dict(sampler_kwargs)
    if seed is not None:
        kwargs["random_seed"] = seed

    with model:
        try:
            idata = pm.sample(nuts_sampler="nutpie", **kwargs)
            sampler_used = "nutpie"
        except Exception as e:
            logger.info(f"nutpie unavailable ({e}), falling back to PyMC NUTS")
            idata = pm.sample(**kwargs)
            sampler_used = "pymc"

    logger.info(f"Sampling complete ({sampler_used})")
    return idata


# =========================================================================
# Posterior draws
# =========================================================================


@dataclass(frozen=True)
class PosteriorDraws:
    """Flattened posterior draws (chains concatenated along one axis).

    ``mu_alpha`` and ``sigma_alpha`` are ``None`` when intercepts are not
    pooled; ``alpha`` and ``beta`` have shape ``(n_draws, n_groups)``.
    ``convergence`` holds the sampler health report when the draws come
    from :func:`fit`.
    """

    mu_beta: np.ndarray
    sigma_beta: np.ndarray
    sigma_y: np.ndarray
    alpha: np.ndarray
    beta: np.ndarray
    pooling: Pooling
    mu_alpha: np.ndarray | None = None
    sigma_alpha: np.ndarray | None = None
    converged: bool = True
    convergence: ConvergenceReport | None = None

    def __post_init__(self) -> None:
        n = len(self.mu_beta)
        for name in ("mu_beta", "sigma_beta", "sigma_y", "mu_alpha", "sigma_alpha"):
            arr = getattr(self, name)
            if arr is None:
                continue
            arr = np.array(arr, dtype=float)
            if arr.shape != (n,):
                raise ValueError(f"{name} has shape {arr.shape}, expected ({n},)")
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)
        for name in ("alpha", "beta"):
            arr = np.array(getattr(self, name), dtype=float)
            if arr.ndim != 2 or arr.shape[0] != n:
                raise ValueError(f"{name} has shape {arr.shape}, expected ({n}, n_groups)")
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)
        if self.alpha.shape != self.beta.shape:
            raise ValueError(f"alpha {self.alpha.shape} and beta {self.beta.shape} differ")
        pooling = Pooling(self.pooling)
        object.__setattr__(self, "pooling", pooling)
        if pooling.pools_intercept and (self.mu_alpha is None or self.sigma_alpha is None):
            raise ValueError("Pooled intercepts require mu_alpha and sigma_alpha draws")

    @property
    def n_draws(self) -> int:
        return len(self.mu_beta)

    @property
    def n_groups(self) -> int:
        return self.alpha.shape[1]

    def hyperparameters(self, i: int) -> Hyperparameters:
        """Population-level parameters of draw *i*.

        Without intercept pooling the intercept mean and spread are taken
        from the draw's per-group intercepts.
        """
        if self.pooling.pools_intercept:
            mu_alpha = float(self.mu_alpha[i])
            sigma_alpha = float(self.sigma_alpha[i])
        else:
            mu_alpha = float(self.alpha[i].mean())
            sigma_alpha = float(self.alpha[i].std(ddof=1)) if self.n_groups > 1 else np.nan
        return Hyperparameters(
            mu_alpha=mu_alpha,
            sigma_alpha=sigma_alpha,
            mu_beta=float(self.mu_beta[i]),
            sigma_beta=float(self.sigma_beta[i]),
            sigma_y=float(self.sigma_y[i]),
        )


def _flat(idata: az.InferenceData, name: str) -> np.ndarray:
    vals = idata.posterior[name].values
    return vals.reshape(-1, *vals.shape[2:])


def extract_draws(
    idata: az.InferenceData,
    pooling: Pooling = Pooling.INTERCEPT_SLOPE,
    converged: bool = True,
    convergence: ConvergenceReport | None = None,
) -> PosteriorDraws:
    """Pull the generative parameters out of *idata* as :class:`PosteriorDraws`.

    When a *convergence* report is given its verdict overrides *converged*.
    """
    if convergence is not None:
        converged = convergence.ok
    pooling = Pooling(pooling)
    extra = {}
    if pooling.pools_intercept:
        extra = dict(mu_alpha=_flat(idata, "mu_alpha"), sigma_alpha=_flat(idata, "sigma_alpha"))
    return PosteriorDraws(
        mu_beta=_flat(idata, "mu_beta"),
        sigma_beta=_flat(idata, "sigma_beta"),
        sigma_y=_flat(idata, "sigma_y"),
        alpha=_flat(idata, "alpha"),
        beta=_flat(idata, "beta"),
        pooling=pooling,
        converged=converged,
        convergence=convergence,
        **extra,
    )


def fit(
    data: dict, config: AnalysisConfig | None = None
) -> tuple[az.InferenceData, PosteriorDraws]:
    """Build, sample and check the model for *data*.

    Non-convergence is logged and recorded on the returned draws (see
    ``PosteriorDraws.convergence``), never raised.
    """
    if config is None:
        config = AnalysisConfig()
    model = build_model(data, pooling=config.pooling, priors=config.priors)
    idata = sample_model(model, sampler_kwargs=config.sampler_kwargs, seed=config.seed)
    report = check_convergence(idata, config.pooling)
    draws = extract_draws(idata, config.pooling, convergence=report)
    return idata, draws
