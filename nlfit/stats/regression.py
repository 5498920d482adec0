"""Provide closed-form straight-line regression.

This module supports:
- starting-value heuristics that linearise a model (log-linear exponential
  growth, for instance), and
- quick OLS summaries with t-based intervals and a slope p-value.
"""

from __future__ import annotations

import math
from typing import Dict

import numpy as np

from .inference import t_critical, two_sided_p_value


def linear_regression(
    x: np.ndarray, y: np.ndarray, min_points: int = 3
) -> Dict[str, float]:
    """Fit an ordinary least-squares straight line to finite data pairs.

    Args:
        x (numpy.ndarray): Predictor values.
        y (numpy.ndarray): Response values.
        min_points (int, optional): Minimum number of finite paired
            observations required. Defaults to ``3``.

    Returns:
        dict[str, float]: Regression diagnostics with keys ``m`` (slope),
        ``b`` (intercept), ``r2``, ``se_m``, ``se_b``, ``ci95_m``, ``ci95_b``
        (95% half-widths), ``p_m`` (p-value for slope), ``n``, ``dof``,
        ``mse``, ``ssxx`` and ``xbar``.

    Raises:
        ValueError: If there are insufficient valid points or no variance
            in ``x``.

    Note:
        With exactly two points the line is returned with NaN standard errors
        (no residual degrees of freedom). ``r2`` is NaN when ``y`` is
        constant.
    """
    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)
    mask = np.isfinite(x_arr) & np.isfinite(y_arr)
    x_arr = x_arr[mask]
    y_arr = y_arr[mask]
    n = int(len(x_arr))
    if n < max(2, min_points):
        raise ValueError("Insufficient valid data for regression.")

    xbar = float(np.mean(x_arr))
    ssxx = float(np.sum((x_arr - xbar) ** 2))
    if ssxx <= 0:
        raise ValueError("Insufficient predictor variance for regression.")

    m = float(np.sum((x_arr - xbar) * (y_arr - y_arr.mean())) / ssxx)
    b = float(y_arr.mean() - m * xbar)
    resid = y_arr - (m * x_arr + b)

    sse = float(np.sum(resid**2))
    sst = float(np.sum((y_arr - y_arr.mean()) ** 2))
    r2 = 1.0 - sse / sst if sst > 0 else math.nan

    dof = n - 2
    mse = sse / dof if dof > 0 else math.inf

    se_m = se_b = ci95_m = ci95_b = p_m = math.nan
    if dof > 0:
        se_m = float(np.sqrt(mse / ssxx))
        se_b = float(np.sqrt(mse * (1.0 / n + (xbar**2) / ssxx)))
        t_crit = t_critical(0.95, dof)
        ci95_m = t_crit * se_m
        ci95_b = t_crit * se_b
        if se_m > 0:
            p_m = two_sided_p_value(m / se_m, dof)
        else:
            p_m = 0.0 if m != 0 else math.nan

    return {
        "m": m,
        "b": b,
        "r2": float(r2),
        "se_m": se_m,
        "se_b": se_b,
        "ci95_m": ci95_m,
        "ci95_b": ci95_b,
        "p_m": p_m,
        "n": n,
        "dof": dof,
        "mse": mse,
        "ssxx": ssxx,
        "xbar": xbar,
    }
