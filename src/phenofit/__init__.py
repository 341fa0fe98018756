# ---------------------------------------------------------------------------
# phenofit — Hierarchical Bayesian models for phenological time series
# ---------------------------------------------------------------------------
"""Partial-pooling regressions of event timing on year, with simulation-based
validation and posterior retrodictive checks."""

from .config import (
    DATA_DIR,
    OUTPUT_DIR,
    TRUE_HYPERPARAMETERS,
    AnalysisConfig,
    Hyperparameters,
    Pooling,
    PriorConfig,
)
from .data import build_data, load_data
from .diagnostics import ConvergenceReport, check_convergence, summarize_posterior
from .model import build_model, validate_data
from .recovery import compare_given_estimated, run_recovery_study, slope_recovery_correlation
from .retrodictive import Resample, RetrodictiveResult, group_sd, run_retrodictive_check
from .sampling import (
    DEFAULT_SAMPLER_KWARGS,
    LIGHT_SAMPLER_KWARGS,
    PosteriorDraws,
    extract_draws,
    fit,
    sample_model,
)
from .simulate import (
    GroupEffects,
    draw_group_effects,
    estimate_group_slopes,
    make_design,
    simulate_dataset,
    simulate_observations,
)

__all__ = [
    "DATA_DIR",
    "OUTPUT_DIR",
    "TRUE_HYPERPARAMETERS",
    "AnalysisConfig",
    "Hyperparameters",
    "Pooling",
    "PriorConfig",
    "build_data",
    "load_data",
    "ConvergenceReport",
    "check_convergence",
    "summarize_posterior",
    "build_model",
    "validate_data",
    "compare_given_estimated",
    "run_recovery_study",
    "slope_recovery_correlation",
    "Resample",
    "RetrodictiveResult",
    "group_sd",
    "run_retrodictive_check",
    "DEFAULT_SAMPLER_KWARGS",
    "LIGHT_SAMPLER_KWARGS",
    "PosteriorDraws",
    "extract_draws",
    "fit",
    "sample_model",
    "GroupEffects",
    "draw_group_effects",
    "estimate_group_slopes",
    "make_design",
    "simulate_dataset",
    "simulate_observations",
]
