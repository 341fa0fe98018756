# ---------------------------------------------------------------------------
# phenofit.config — Model variants, priors, and project constants
# ---------------------------------------------------------------------------
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root (phenofit/)
DATA_DIR = BASE_DIR / "data"
OUTPUT_DIR = BASE_DIR / "output"

# ---------------------------------------------------------------------------
# Data constants
# ---------------------------------------------------------------------------

GROUP_COL = "species"
YEAR_COL = "year"
RESPONSE_COL = "doy"

# Year offsets are measured from this year; None means the earliest year
REF_YEAR: int | None = 1980

# ---------------------------------------------------------------------------
# Retrodictive check
# ---------------------------------------------------------------------------

N_RETRODICTIVE_REPS = 1000
DEFAULT_SEED = 2024


# ---------------------------------------------------------------------------
# Model variants
# ---------------------------------------------------------------------------


class Pooling(str, Enum):
    """Which group-level coefficients are partially pooled.

    ``SLOPE`` pools slopes only; intercepts get independent fixed priors.
    ``INTERCEPT_SLOPE`` pools both intercepts and slopes.
    """

    SLOPE = "slope"
    INTERCEPT_SLOPE = "intercept_slope"

    @property
    def pools_intercept(self) -> bool:
        return self is Pooling.INTERCEPT_SLOPE


# ---------------------------------------------------------------------------
# Generative parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Hyperparameters:
    """Population-level parameters of the generative model.

    Parameters
    ----------
    mu_alpha : float
        Mean intercept (event day of year at the reference year).
    sigma_alpha : float
        Spread of group intercepts around ``mu_alpha``.
    mu_beta : float
        Mean slope (days per year).
    sigma_beta : float
        Spread of group slopes around ``mu_beta``.
    sigma_y : float
        Observation noise scale.
    """

    mu_alpha: float
    sigma_alpha: float
    mu_beta: float
    sigma_beta: float
    sigma_y: float

    def validate(self) -> Hyperparameters:
        """Raise ``ValueError`` on non-finite values or non-positive scales."""
        for name in ("mu_alpha", "mu_beta"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite, got {value!r}")
        for name in ("sigma_alpha", "sigma_beta", "sigma_y"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive finite scale, got {value!r}")
        return self

    def as_dict(self) -> dict[str, float]:
        return {
            "mu_alpha": self.mu_alpha,
            "sigma_alpha": self.sigma_alpha,
            "mu_beta": self.mu_beta,
            "sigma_beta": self.sigma_beta,
            "sigma_y": self.sigma_y,
        }


# Reference simulation scenario: spring events around day 125, advancing or
# retreating by ~0.5 day/yr on average
TRUE_HYPERPARAMETERS = Hyperparameters(
    mu_alpha=125.0,
    sigma_alpha=20.0,
    mu_beta=0.5,
    sigma_beta=1.0,
    sigma_y=5.0,
)


@dataclass(frozen=True)
class PriorConfig:
    """Prior locations and scales for the hierarchical regression.

    Means get Normal priors, scales get HalfNormal priors.  In the
    ``SLOPE`` variant the per-group intercepts use
    ``Normal(alpha_mu, alpha_sigma)`` directly.
    """

    mu_alpha_mu: float = 150.0
    mu_alpha_sigma: float = 75.0
    sigma_alpha_sigma: float = 50.0
    mu_beta_mu: float = 0.0
    mu_beta_sigma: float = 5.0
    sigma_beta_sigma: float = 5.0
    sigma_y_sigma: float = 20.0
    alpha_mu: float = 150.0
    alpha_sigma: float = 75.0


DEFAULT_PRIORS = PriorConfig()


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------


@dataclass
class AnalysisConfig:
    """Explicit run settings passed to every step of the workflow.

    Replaces ambient process state (global seeds, module options) so that
    each call is reproducible from its arguments alone.
    """

    seed: int = DEFAULT_SEED
    pooling: Pooling = Pooling.INTERCEPT_SLOPE
    priors: PriorConfig = field(default_factory=PriorConfig)
    sampler_kwargs: dict | None = None
    ref_year: int | None = REF_YEAR
    n_reps: int = N_RETRODICTIVE_REPS
    output_dir: Path = OUTPUT_DIR
