# ---------------------------------------------------------------------------
# phenofit.retrodictive — Posterior retrodictive checks
# ---------------------------------------------------------------------------
"""Re-simulate datasets from posterior draws over the empirical design and
compare a per-group summary statistic with its observed value.

Each repetition picks one posterior draw, regenerates group effects from
that draw's hyperparameters, simulates one response per observed
(group, year) pair and reduces it with the statistic.  Repetitions share no
state, so they can run in any order or in parallel without changing the
result.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np
import polars as pl

from .sampling import PosteriorDraws
from .simulate import GroupEffects, draw_group_effects, simulate_observations

logger = logging.getLogger(__name__)

Statistic = Callable[[np.ndarray, np.ndarray, int], np.ndarray]


class Resample(str, Enum):
    """How posterior draws are picked across repetitions.

    ``WITH_REPLACEMENT`` draws indices with replacement, so any number of
    repetitions is allowed.  ``CAP`` draws without replacement and reduces
    the repetition count to the number of available draws.
    """

    WITH_REPLACEMENT = "with_replacement"
    CAP = "cap"


# =========================================================================
# Summary statistics
# =========================================================================


def group_sd(y: np.ndarray, group_idx: np.ndarray, n_groups: int) -> np.ndarray:
    """Sample standard deviation (ddof=1) of *y* within each group.

    NaN for groups with fewer than two observations.
    """
    n = np.bincount(group_idx, minlength=n_groups).astype(float)
    with np.errstate(invalid="ignore", divide="ignore"):
        mean = np.bincount(group_idx, weights=y, minlength=n_groups) / n
        ss = np.bincount(group_idx, weights=(y - mean[group_idx]) ** 2, minlength=n_groups)
        sd = np.sqrt(ss / (n - 1))
    sd[n < 2] = np.nan
    return sd


def group_mean(y: np.ndarray, group_idx: np.ndarray, n_groups: int) -> np.ndarray:
    """Mean of *y* within each group (NaN for empty groups)."""
    n = np.bincount(group_idx, minlength=n_groups).astype(float)
    with np.errstate(invalid="ignore", divide="ignore"):
        mean = np.bincount(group_idx, weights=y, minlength=n_groups) / n
    mean[n == 0] = np.nan
    return mean


# =========================================================================
# Result
# =========================================================================


@dataclass(frozen=True)
class RetrodictiveResult:
    """Simulated statistic distribution alongside the observed statistic.

    ``simulated`` has shape ``(n_reps, n_groups)``; ``draw_index`` records
    which posterior draw fed each repetition.  ``reliable`` is ``False``
    when the underlying fit did not converge.
    """

    draw_index: np.ndarray
    simulated: np.ndarray
    observed: np.ndarray
    groups: list[str]
    resample: Resample
    reliable: bool = True

    @property
    def n_reps(self) -> int:
        return self.simulated.shape[0]

    def tail_probabilities(self) -> np.ndarray:
        """Per-group fraction of repetitions with simulated >= observed.

        Values near 0 or 1 flag groups the model cannot reproduce.
        """
        finite = np.isfinite(self.simulated)
        exceed = (self.simulated >= self.observed[None, :]) & finite
        with np.errstate(invalid="ignore", divide="ignore"):
            p = exceed.sum(axis=0) / finite.sum(axis=0)
        p[~np.isfinite(self.observed)] = np.nan
        return p

    def pooled(self) -> tuple[np.ndarray, float]:
        """Per-repetition mean of the statistic across groups, and the observed mean."""
        mask = np.isfinite(self.observed)
        sim = np.nanmean(self.simulated[:, mask], axis=1)
        return sim, float(self.observed[mask].mean())

    def summary(self, quantiles: tuple[float, float] = (0.05, 0.95)) -> pl.DataFrame:
        lo, hi = np.nanquantile(self.simulated, quantiles, axis=0)
        return pl.DataFrame(
            {
                "group": self.groups,
                "observed": self.observed,
                "sim_mean": np.nanmean(self.simulated, axis=0),
                f"sim_q{quantiles[0] * 100:g}": lo,
                f"sim_q{quantiles[1] * 100:g}": hi,
                "tail_prob": self.tail_probabilities(),
            }
        )


# =========================================================================
# Check
# =========================================================================


def _regenerate_effects(
    draws: PosteriorDraws, i: int, rng: np.random.Generator
) -> GroupEffects:
    hyper = draws.hyperparameters(i)
    if draws.pooling.pools_intercept:
        return draw_group_effects(hyper, draws.n_groups, rng)
    # Unpooled intercepts have no population distribution to redraw from
    beta = rng.normal(hyper.mu_beta, hyper.sigma_beta, size=draws.n_groups)
    return GroupEffects(alpha=draws.alpha[i], beta=beta)


def _one_repetition(
    draws: PosteriorDraws,
    i: int,
    data: dict,
    statistic: Statistic,
    seed_seq: np.random.SeedSequence,
) -> np.ndarray:
    rng = np.random.default_rng(seed_seq)
    effects = _regenerate_effects(draws, i, rng)
    y = simulate_observations(
        effects, data["group_idx"], data["year"], float(draws.sigma_y[i]), rng
    )
    return statistic(y, data["group_idx"], data["J"])


def run_retrodictive_check(
    draws: PosteriorDraws,
    data: dict,
    statistic: Statistic = group_sd,
    n_reps: int = 1000,
    seed: int | None = None,
    resample: Resample = Resample.WITH_REPLACEMENT,
    n_jobs: int = 1,
) -> RetrodictiveResult:
    """Distribution of *statistic* over datasets simulated from *draws*.

    Parameters
    ----------
    draws : PosteriorDraws
        Fitted posterior for *data*.
    data : dict
        Empirical model data; its (group, year) design is reused for every
        simulated dataset.
    statistic : callable
        ``(y, group_idx, n_groups) -> (n_groups,)``.  Defaults to
        :func:`group_sd`.
    n_reps : int
        Number of simulated datasets.
    seed : int, optional
        Fixes the draw selection and every repetition's generator.
    resample : Resample
        Draw-selection policy; see :class:`Resample`.
    n_jobs : int
        Worker threads.  Results do not depend on this value.
    """
    resample = Resample(resample)
    if n_reps < 1:
        raise ValueError(f"n_reps must be >= 1, got {n_reps}")
    if draws.n_groups != data["J"]:
        raise ValueError(
            f"Posterior covers {draws.n_groups} groups but data has {data['J']}"
        )

    if resample is Resample.CAP and n_reps > draws.n_draws:
        logger.info(
            f"Capping retrodictive repetitions at {draws.n_draws} posterior draws "
            f"(requested {n_reps})"
        )
        n_reps = draws.n_draws

    root = np.random.SeedSequence(seed)
    index_seq, rep_seq = root.spawn(2)
    draw_index = np.random.default_rng(index_seq).choice(
        draws.n_draws, size=n_reps, replace=resample is Resample.WITH_REPLACEMENT
    )
    child_seqs = rep_seq.spawn(n_reps)

    def task(k: int) -> np.ndarray:
        return _one_repetition(draws, int(draw_index[k]), data, statistic, child_seqs[k])

    if n_jobs > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            rows = list(pool.map(task, range(n_reps)))
    else:
        rows = [task(k) for k in range(n_reps)]

    observed = statistic(np.asarray(data["y"]), data["group_idx"], data["J"])
    if not draws.converged:
        logger.warning("Retrodictive check uses a fit that did not converge; marked unreliable")

    return RetrodictiveResult(
        draw_index=draw_index,
        simulated=np.vstack(rows),
        observed=np.asarray(observed, dtype=float),
        groups=list(data["groups"]),
        resample=resample,
        reliable=draws.converged,
    )
