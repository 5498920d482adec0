"""
Fit one curve per factor combination and summarise parameters across groups.

Combinations of factor levels that have no observations are reported as
``no_data`` rows instead of being silently absent, so unbalanced designs are
visible in the results table. A group whose data makes the fit impossible
to set up is recorded as ``invalid_data`` and the remaining groups are
still fitted.
"""

from __future__ import annotations

import itertools
import logging
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from .fitting import FitResult, _parse_bounds, _parse_p0, fit_curve
from .models.registry import resolve_model
from .observations import ObservationSet
from .schema import COLUMNS
from .stats.inference import t_critical
from .weighting import check_mode

logger = logging.getLogger(__name__)

NO_DATA = "no_data"
INVALID_DATA = "invalid_data"


def _result_row(
    keys: dict, template, result: FitResult | None, n_obs: int, status: str = NO_DATA
) -> dict:
    row = dict(keys)
    row[COLUMNS.n_obs] = n_obs
    if result is None:
        row[COLUMNS.status] = status
        row[COLUMNS.success] = False
        for name in template.param_names:
            row[name] = np.nan
            row[COLUMNS.se(name)] = np.nan
        row[COLUMNS.r2] = np.nan
        row[COLUMNS.rse] = np.nan
        return row

    row[COLUMNS.status] = result.status.value
    row[COLUMNS.success] = result.success
    for name, value, se in zip(result.param_names, result.params, result.stderr):
        row[name] = float(value) if result.success else np.nan
        row[COLUMNS.se(name)] = float(se) if result.success else np.nan
    row[COLUMNS.r2] = result.r2
    row[COLUMNS.rse] = result.residual_std_error if result.success else np.nan
    return row


def fit_groups(
    observations: ObservationSet,
    model,
    by: Sequence[str],
    return_fits: bool = False,
    **fit_kwargs,
):
    """Fit ``model`` separately for every combination of factor levels.

    Args:
        observations (ObservationSet): Data carrying the factor columns.
        model: Template, registered name, or callable (see ``fit_curve``).
        by (Sequence[str]): Factor names defining the groups.
        return_fits (bool, optional): Also return the ``FitResult`` objects
            keyed by level tuple. Defaults to ``False``.
        **fit_kwargs: Passed to :func:`nlfit.fitting.fit_curve` for every
            group (``p0``, ``weights``, ``bounds``, ``options``).

    Returns:
        pandas.DataFrame or tuple: One row per level combination with the
        factor levels, ``n``, ``status``, ``success``, every parameter and its
        ``_se`` column, ``r2`` and ``residual_se``. Parameters of failed fits
        are NaN. Groups with no observations have status ``no_data``; groups
        whose data cannot be weighted have status ``invalid_data``. With
        ``return_fits`` a ``(table, fits)`` tuple.

    Raises:
        KeyError: If a factor is unknown.
        ValueError: If ``by`` is empty, ``weights`` is a fixed array (it
            cannot be split across groups; pass a mode or callable) or an
            unknown mode, or ``p0``/``bounds`` are malformed.
    """
    by = list(by)
    if not by:
        raise ValueError("fit_groups needs at least one factor in 'by'.")
    weights = fit_kwargs.get("weights")
    if isinstance(weights, str):
        check_mode(weights)
    elif weights is not None and not callable(weights):
        raise ValueError(
            "Per-group fits cannot share one weight array; pass a weighting mode or callable."
        )
    template = resolve_model(model)
    _, given = _parse_p0(template, fit_kwargs.get("p0"))
    if template.guess is None and not given.all():
        raise ValueError(
            f"Model '{template.name}' has no starting-value heuristic; pass p0."
        )
    _parse_bounds(template, fit_kwargs.get("bounds"))

    observed: Dict[tuple, ObservationSet] = dict(observations.groups(by))
    grid = list(itertools.product(*(observations.levels(f) for f in by)))

    rows = []
    fits: Dict[tuple, FitResult] = {}
    n_failed = 0
    n_empty = 0
    for key in grid:
        labels = dict(zip(by, key))
        subset = observed.get(key)
        if subset is None or subset.n_obs == 0:
            logger.warning("No observations for %s", labels)
            n_empty += 1
            rows.append(_result_row(labels, template, None, 0))
            continue
        try:
            result = fit_curve(template, subset.x, subset.y, **fit_kwargs)
        except ValueError as exc:
            # Only the group's data can fail here, e.g. a zero response under
            # observed weighting.
            logger.warning("Fit for %s skipped: %s", labels, exc)
            n_failed += 1
            rows.append(_result_row(labels, template, None, subset.n_obs, INVALID_DATA))
            continue
        if not result.success:
            n_failed += 1
        fits[key] = result
        rows.append(_result_row(labels, template, result, subset.n_obs))

    logger.info(
        "Fitted '%s' to %d of %d groups (%d failed, %d without data)",
        template.name,
        len(grid) - n_failed - n_empty,
        len(grid),
        n_failed,
        n_empty,
    )
    table = pd.DataFrame.from_records(rows)
    return (table, fits) if return_fits else table


def summarize_groups(
    results_df: pd.DataFrame,
    parameter: str,
    by: str | Sequence[str],
    level: float = 0.95,
) -> pd.DataFrame:
    """Summarise one fitted parameter across replicate groups.

    Args:
        results_df (pandas.DataFrame): Output of :func:`fit_groups`.
        parameter (str): Parameter column to summarise.
        by (str | Sequence[str]): Factor(s) to summarise within, typically
            the treatment factors with the subject factor left out.
        level (float, optional): Coverage of the t-based interval.

    Returns:
        pandas.DataFrame: ``mean``, ``sd``, ``sem``, ``ci_lower``,
        ``ci_upper`` and ``n`` per level, counting successful fits only.

    Raises:
        KeyError: If ``parameter`` or a ``by`` column is missing.
    """
    by = [by] if isinstance(by, str) else list(by)
    for col in [parameter, *by]:
        if col not in results_df.columns:
            raise KeyError(f"Missing column '{col}' in results table.")
    columns = by + ["mean", "sd", "sem", "ci_lower", "ci_upper", COLUMNS.n_obs]

    ok = results_df
    if COLUMNS.success in results_df.columns:
        ok = results_df[results_df[COLUMNS.success].astype(bool)]
    if ok.empty:
        return pd.DataFrame(columns=columns)

    rows = []
    for key, group in ok.groupby(by, sort=True):
        key = key if isinstance(key, tuple) else (key,)
        vals = pd.to_numeric(group[parameter], errors="coerce").to_numpy(dtype=float)
        vals = vals[np.isfinite(vals)]
        n = int(len(vals))
        mean = float(np.mean(vals)) if n else np.nan
        sd = float(np.std(vals, ddof=1)) if n >= 2 else np.nan
        sem = sd / np.sqrt(n) if n >= 2 else np.nan
        half = t_critical(level, n - 1) * sem if n >= 2 else np.nan
        row = dict(zip(by, key))
        row.update(
            {
                "mean": mean,
                "sd": sd,
                "sem": sem,
                "ci_lower": mean - half,
                "ci_upper": mean + half,
                COLUMNS.n_obs: n,
            }
        )
        rows.append(row)

    return pd.DataFrame.from_records(rows, columns=columns).reset_index(drop=True)
