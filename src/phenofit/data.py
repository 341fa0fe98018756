# ---------------------------------------------------------------------------
# phenofit.data — Data loading and model-input assembly
# ---------------------------------------------------------------------------
"""Load a phenological time series (group, year, event day) and convert it
into the keyed arrays consumed by the model, simulator and checks."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import polars as pl

from .config import GROUP_COL, REF_YEAR, RESPONSE_COL, YEAR_COL

logger = logging.getLogger(__name__)


def load_data(
    path: Path | str,
    group_col: str = GROUP_COL,
    year_col: str = YEAR_COL,
    response_col: str = RESPONSE_COL,
    ref_year: int | None = REF_YEAR,
) -> dict:
    """Read a CSV of event timings and build the model data dict.

    Parameters
    ----------
    path : Path or str
        CSV file with at least the group, year and response columns.
    group_col, year_col, response_col : str
        Column names.  Default to the ``species`` / ``year`` / ``doy``
        layout.
    ref_year : int, optional
        Year subtracted from ``year_col`` to form the predictor.  ``None``
        uses the earliest year in the file.

    Returns
    -------
    dict
        See :func:`build_data`.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    raw = pl.read_csv(path, null_values=["NA", ""])
    missing = {group_col, year_col, response_col} - set(raw.columns)
    if missing:
        raise ValueError(f"Missing required columns in {path.name}: {sorted(missing)}")

    frame = raw.select(
        pl.col(group_col).cast(pl.Utf8).alias("group"),
        pl.col(year_col).cast(pl.Float64, strict=False).alias("year"),
        pl.col(response_col).cast(pl.Float64, strict=False).alias("y"),
    )
    n_raw = frame.height
    frame = frame.drop_nulls().filter(
        pl.col("year").is_finite() & pl.col("y").is_finite()
    )
    n_dropped = n_raw - frame.height
    if n_dropped:
        logger.warning(f"Dropped {n_dropped} of {n_raw} rows with missing values from {path.name}")

    if ref_year is None:
        if frame.is_empty():
            raise ValueError(f"No usable observations in {path.name}")
        ref_year = int(frame["year"].min())
    frame = frame.with_columns((pl.col("year") - ref_year).alias("year"))

    data = build_data(frame, ref_year=ref_year)
    logger.info(
        f"Loaded {data['N']} observations across {data['J']} groups "
        f"from {path.name} (ref_year={ref_year})"
    )
    return data


def build_data(frame: pl.DataFrame, ref_year: int | None = None) -> dict:
    """Assemble the model data dict from a ``group`` / ``year`` / ``y`` frame.

    ``year`` is expected to already be an offset from ``ref_year``.  Groups
    are indexed in sorted label order.

    Returns
    -------
    dict
        Keys: ``frame``, ``groups`` (labels), ``group_idx``, ``year``,
        ``y``, ``N``, ``J``, ``ref_year``.
    """
    if frame.is_empty():
        raise ValueError("Cannot build model data from an empty frame")

    frame = frame.sort("group", "year")
    groups = frame["group"].unique().sort().to_list()
    lookup = {g: j for j, g in enumerate(groups)}
    group_idx = np.array([lookup[g] for g in frame["group"].to_list()], dtype=int)

    year = frame["year"].to_numpy().astype(float)
    y = frame["y"].to_numpy().astype(float)
    for arr in (group_idx, year, y):
        arr.flags.writeable = False

    return dict(
        frame=frame,
        groups=groups,
        group_idx=group_idx,
        year=year,
        y=y,
        N=len(y),
        J=len(groups),
        ref_year=ref_year,
    )
