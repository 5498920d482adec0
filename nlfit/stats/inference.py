"""Student-t inference and nested-model comparison for fitted curves.

This module supports:
- t-based confidence intervals and two-sided p-values for estimates, and
- the extra-sum-of-squares F test with an AICc cross-check for choosing
  between two nested fits of the same data.
"""

from __future__ import annotations

import math
from typing import Dict

import numpy as np
from scipy.stats import f as fisher_f
from scipy.stats import t as student_t


def t_critical(level: float, dof: float) -> float:
    """Return the two-sided Student t quantile for a confidence level.

    Args:
        level (float): Two-sided coverage, e.g. ``0.95``.
        dof (float): Degrees of freedom of the residual variance.

    Returns:
        float: ``t`` such that ``P(|T| <= t) = level``; NaN when ``dof <= 0``.

    Raises:
        ValueError: If ``level`` is not strictly between 0 and 1.
    """
    if not 0.0 < level < 1.0:
        raise ValueError("Confidence level must lie strictly between 0 and 1.")
    if not np.isfinite(dof) or dof <= 0:
        return math.nan
    return float(student_t.ppf(0.5 + level / 2.0, dof))


def t_confidence_interval(
    estimate, se, dof: float, level: float = 0.95
) -> tuple[np.ndarray, np.ndarray]:
    """Return lower and upper confidence limits ``estimate ± t* se``.

    Works element-wise on arrays of estimates and standard errors.
    """
    est = np.asarray(estimate, dtype=float)
    half = t_critical(level, dof) * np.asarray(se, dtype=float)
    return est - half, est + half


def two_sided_p_value(t_stat, dof: float):
    """Two-sided p-value of a t statistic under ``H0: parameter = 0``.

    Args:
        t_stat: Scalar or array of t statistics.
        dof (float): Degrees of freedom.

    Returns:
        float or numpy.ndarray: ``2 * P(T >= |t|)``; NaN where undefined.
    """
    t_arr = np.asarray(t_stat, dtype=float)
    if not np.isfinite(dof) or dof <= 0:
        out = np.full_like(t_arr, np.nan)
    else:
        out = 2.0 * student_t.sf(np.abs(t_arr), dof)
    return float(out) if out.ndim == 0 else out


def aicc(ssr: float, n_obs: int, n_params: int) -> float:
    """Corrected Akaike information criterion for a least-squares fit.

    Uses ``n ln(SSR/n) + 2K + 2K(K+1)/(n-K-1)`` with ``K = p + 1`` (the
    residual variance counts as a parameter). Returns NaN when undefined.
    """
    k = n_params + 1
    if n_obs - k - 1 <= 0 or not np.isfinite(ssr) or ssr <= 0:
        return math.nan
    return float(
        n_obs * math.log(ssr / n_obs) + 2.0 * k + (2.0 * k * (k + 1)) / (n_obs - k - 1)
    )


def compare_fits(simpler, fuller, alpha: float = 0.05) -> Dict[str, object]:
    """Compare two nested fits with the extra-sum-of-squares F test.

    Args:
        simpler: Fit result with fewer parameters (``FitResult``).
        fuller: Fit result of the same data with more parameters.
        alpha (float, optional): Significance level for preferring the fuller
            model. Defaults to ``0.05``.

    Returns:
        dict[str, object]: ``F``, ``dfn``, ``dfd``, ``p_value``,
        ``delta_aicc`` (fuller minus simpler) and ``preferred`` (model name).

    Raises:
        ValueError: If either fit is unsuccessful, the fits were made on a
            different number of observations, or the models are not nested
            by parameter count.

    Note:
        The F test assumes the simpler model is a special case of the fuller
        one. Only parameter counts can be checked here; nesting itself is
        the caller's responsibility.
    """
    if not (simpler.success and fuller.success):
        raise ValueError("Both fits must have converged to be compared.")
    if simpler.n_obs != fuller.n_obs:
        raise ValueError("Fits must be made on the same observations.")
    p_s = len(simpler.params)
    p_f = len(fuller.params)
    if p_f <= p_s:
        raise ValueError("The fuller model must have more parameters.")

    dfn = p_f - p_s
    dfd = fuller.dof
    if dfd <= 0:
        raise ValueError("The fuller model leaves no residual degrees of freedom.")

    ss_s = float(simpler.ssr)
    ss_f = float(fuller.ssr)
    if ss_f > 0:
        f_stat = ((ss_s - ss_f) / dfn) / (ss_f / dfd)
        p_value = float(fisher_f.sf(f_stat, dfn, dfd))
    else:
        f_stat = math.inf if ss_s > 0 else math.nan
        p_value = 0.0 if ss_s > 0 else math.nan

    delta = aicc(ss_f, fuller.n_obs, p_f) - aicc(ss_s, simpler.n_obs, p_s)
    preferred = fuller.model if (np.isfinite(p_value) and p_value < alpha) else simpler.model

    return {
        "F": float(f_stat),
        "dfn": int(dfn),
        "dfd": int(dfd),
        "p_value": p_value,
        "delta_aicc": float(delta),
        "preferred": preferred,
    }
