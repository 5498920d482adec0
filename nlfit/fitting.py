"""
Nonlinear least-squares curve fitting.

Given paired observations, a model template and starting values, estimate the
model parameters that minimise the (optionally weighted) sum of squared
residuals using ``scipy.optimize.least_squares``:

- Without bounds the MINPACK Levenberg-Marquardt method (``method="lm"``) is
  used. Each step linearises the model around the current estimates, solves
  the damped linear least-squares problem, and repeats until the relative
  drop in the sum of squares falls below ``ftol`` or the evaluation budget
  is spent.
- With bounds the trust-region reflective method is used instead.

Standard errors come from ``s² (JᵀWJ)⁻¹`` with ``s² = SSR_w / (n - p)``,
computed through an SVD of the weighted Jacobian with a rank threshold so a
singular Jacobian is detected instead of producing meaningless numbers.

Failures (too little data, starting values where the model is undefined,
non-convergence, divergence, singular Jacobian) are reported through
``FitResult.status`` and never raised. Malformed arguments raise
``ValueError``/``KeyError``.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.optimize import approx_fprime, least_squares

from .config import FitOptions
from .models.registry import ModelTemplate, resolve_model
from .stats.inference import aicc, t_confidence_interval, two_sided_p_value
from .weighting import resolve_weighting

logger = logging.getLogger(__name__)

# A column-scaled Jacobian with condition number above 1/_RANK_RTOL counts as
# singular; finite-difference Jacobians are only accurate to about 1e-8.
_RANK_RTOL = 1e-7

_ARRAY_FIELDS = (
    "params",
    "stderr",
    "covariance",
    "x",
    "y",
    "fitted",
    "residuals",
    "weights",
)


class FitStatus(str, Enum):
    CONVERGED = "converged"
    SINGULAR = "singular"
    NOT_CONVERGED = "not_converged"
    DIVERGED = "diverged"
    BAD_START = "bad_start"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class FitResult:
    """Outcome of one call to :func:`fit_curve`.

    Attributes:
        model: Name of the fitted template.
        param_names: Parameter names in estimate order.
        params: Best-fit values (starting values when the solver never ran).
        stderr: Standard errors; NaN when unavailable.
        covariance: Scaled parameter covariance matrix.
        x, y: Observations that entered the fit, after cleaning.
        fitted: Model prediction at ``x``.
        residuals: Unweighted residuals ``y - fitted``.
        weights: Weights at the solution (ones for unweighted fits).
        ssr: Weighted residual sum of squares.
        n_obs: Number of observations used.
        dof: Residual degrees of freedom: observations with positive weight
            minus ``len(params)``.
        r2: Unweighted coefficient of determination.
        nfev: Number of model evaluations spent by the solver.
        status: Outcome code.
        message: Solver or validation message.
        weighting: Name of the weighting scheme.
        confidence_level: Default two-sided coverage for intervals.

    All arrays are read-only; a result does not change after it is built.
    """

    model: str
    param_names: tuple[str, ...]
    params: np.ndarray
    stderr: np.ndarray
    covariance: np.ndarray
    x: np.ndarray
    y: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    weights: np.ndarray
    ssr: float
    n_obs: int
    dof: int
    r2: float
    nfev: int
    status: FitStatus
    message: str
    weighting: str = "none"
    confidence_level: float = 0.95
    template: Optional[ModelTemplate] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        for name in _ARRAY_FIELDS:
            arr = np.array(getattr(self, name), dtype=float, copy=True)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def success(self) -> bool:
        return self.status is FitStatus.CONVERGED

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    def params_dict(self) -> Dict[str, float]:
        return {n: float(v) for n, v in zip(self.param_names, self.params)}

    def stderr_dict(self) -> Dict[str, float]:
        return {n: float(v) for n, v in zip(self.param_names, self.stderr)}

    @property
    def t_values(self) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            return self.params / self.stderr

    @property
    def p_values(self) -> np.ndarray:
        """Two-sided p-values for ``H0: parameter = 0``."""
        return np.atleast_1d(two_sided_p_value(self.t_values, self.dof))

    @property
    def residual_std_error(self) -> float:
        if self.dof <= 0 or not np.isfinite(self.ssr):
            return math.nan
        return math.sqrt(self.ssr / self.dof)

    @property
    def aicc(self) -> float:
        return aicc(self.ssr, self.n_obs, self.n_params)

    def confidence_intervals(self, level: float | None = None) -> pd.DataFrame:
        """Return t-based confidence limits as a DataFrame indexed by parameter."""
        level = self.confidence_level if level is None else level
        lower, upper = t_confidence_interval(self.params, self.stderr, self.dof, level)
        return pd.DataFrame(
            {"lower": lower, "upper": upper}, index=list(self.param_names)
        )

    def predict(self, x) -> np.ndarray:
        if self.template is None:
            raise ValueError("This result carries no model template to evaluate.")
        return np.array(self.template(x, *self.params), dtype=float)

    def curve(self, n_points: int = 200) -> pd.DataFrame:
        """Dense ``x``/``y_fit`` table spanning the observed predictor range."""
        if self.x.size == 0:
            return pd.DataFrame(columns=["x", "y_fit"])
        grid = np.linspace(float(self.x.min()), float(self.x.max()), n_points)
        return pd.DataFrame({"x": grid, "y_fit": self.predict(grid)})


def _coerce_xy(x, y) -> tuple[np.ndarray, np.ndarray]:
    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)
    if x_arr.ndim != 1 or y_arr.ndim != 1:
        raise ValueError("x and y must be one-dimensional.")
    if x_arr.shape != y_arr.shape:
        raise ValueError(
            f"x and y must have the same length, got {x_arr.size} and {y_arr.size}."
        )
    return x_arr, y_arr


def _parse_p0(template: ModelTemplate, p0) -> tuple[np.ndarray, np.ndarray]:
    """Return starting values and a mask of which ones the caller supplied."""
    n = template.n_params
    values = np.full(n, np.nan)
    given = np.zeros(n, dtype=bool)
    if p0 is None:
        return values, given
    if isinstance(p0, Mapping):
        unknown = set(p0) - set(template.param_names)
        if unknown:
            raise ValueError(
                f"Invalid parameter names: {sorted(unknown)}. "
                f"Model '{template.name}' has {list(template.param_names)}."
            )
        for i, name in enumerate(template.param_names):
            if name in p0:
                values[i] = float(p0[name])
                given[i] = True
    else:
        arr = np.asarray(p0, dtype=float).ravel()
        if arr.size != n:
            raise ValueError(
                f"Model '{template.name}' takes {n} parameters, got {arr.size} starting values."
            )
        values[:] = arr
        given[:] = True
    if not np.all(np.isfinite(values[given])):
        raise ValueError("Starting values must be finite.")
    return values, given


def _parse_bounds(template: ModelTemplate, bounds) -> Optional[tuple[np.ndarray, np.ndarray]]:
    if bounds is None:
        return None
    n = template.n_params
    lower = np.full(n, -np.inf)
    upper = np.full(n, np.inf)
    if isinstance(bounds, Mapping):
        unknown = set(bounds) - set(template.param_names)
        if unknown:
            raise ValueError(f"Invalid parameter names in bounds: {sorted(unknown)}.")
        for i, name in enumerate(template.param_names):
            if name in bounds:
                lo, hi = bounds[name]
                lower[i] = -np.inf if lo is None else float(lo)
                upper[i] = np.inf if hi is None else float(hi)
    else:
        lo, hi = bounds
        lower = np.broadcast_to(np.asarray(lo, dtype=float), (n,)).copy()
        upper = np.broadcast_to(np.asarray(hi, dtype=float), (n,)).copy()
    if np.any(lower >= upper):
        raise ValueError("Each lower bound must be strictly less than its upper bound.")
    return lower, upper


def _covariance(jac: np.ndarray, ssr: float, dof: int) -> Optional[np.ndarray]:
    """Scaled covariance from the weighted Jacobian; ``None`` if rank-deficient.

    Columns are normalised before the SVD so the rank test does not depend on
    parameter units.
    """
    if not np.all(np.isfinite(jac)):
        return None
    norms = np.linalg.norm(jac, axis=0)
    if np.any(norms == 0):
        return None
    try:
        _, s, vt = np.linalg.svd(jac / norms, full_matrices=False)
    except np.linalg.LinAlgError:
        return None
    if s.size < jac.shape[1] or s[-1] <= _RANK_RTOL * s[0]:
        return None
    cov = (vt.T / s**2) @ vt / np.outer(norms, norms)
    return cov * (ssr / dof)


def _fixed_weight_jacobian(
    template: ModelTemplate, x: np.ndarray, y: np.ndarray, theta: np.ndarray, weighting
) -> np.ndarray:
    """Jacobian of ``sqrt(w)·(y - f(x, θ))`` with ``w`` frozen at the solution.

    The solver's Jacobian also differentiates model-based weights, which is
    not the weighted least-squares covariance.
    """
    sqrt_w = np.sqrt(weighting(x, y, template(x, *theta)))

    def frozen_residuals(params):
        return sqrt_w * (y - template(x, *params))

    step = np.sqrt(np.finfo(float).eps) * np.maximum(1.0, np.abs(theta))
    jac = approx_fprime(theta, frozen_residuals, step)
    return np.asarray(jac, dtype=float).reshape(y.size, theta.size)


def _build_result(
    template: ModelTemplate,
    x: np.ndarray,
    y: np.ndarray,
    params: np.ndarray,
    status: FitStatus,
    message: str,
    weighting,
    options: FitOptions,
    covariance: Optional[np.ndarray] = None,
    nfev: int = 0,
    n_support: Optional[int] = None,
) -> FitResult:
    p = template.n_params
    n = int(y.size)
    n_support = n if n_support is None else int(n_support)
    if np.all(np.isfinite(params)):
        fitted = template(x, *params)
        weights = weighting(x, y, fitted)
    else:
        fitted = np.full(n, np.nan)
        weights = np.full(n, np.nan)
    residuals = y - fitted
    with np.errstate(invalid="ignore"):
        ssr = float(np.sum(weights * residuals**2)) if n else math.nan
    sst = float(np.sum((y - y.mean()) ** 2)) if n else 0.0
    r2 = 1.0 - float(np.sum(residuals**2)) / sst if sst > 0 else math.nan

    if covariance is None:
        covariance = np.full((p, p), np.nan)
    with np.errstate(invalid="ignore"):
        stderr = np.sqrt(np.diag(covariance))

    return FitResult(
        model=template.name,
        param_names=template.param_names,
        params=params,
        stderr=stderr,
        covariance=covariance,
        x=x,
        y=y,
        fitted=fitted,
        residuals=residuals,
        weights=weights,
        ssr=ssr if status is not FitStatus.INSUFFICIENT_DATA else math.nan,
        n_obs=n,
        dof=n_support - p,
        r2=r2 if status in (FitStatus.CONVERGED, FitStatus.SINGULAR) else math.nan,
        nfev=int(nfev),
        status=status,
        message=message,
        weighting=weighting.name,
        confidence_level=options.confidence_level,
        template=template,
    )


def _warn_on_bounds(
    template: ModelTemplate, params: np.ndarray, bounds, active_mask: np.ndarray
) -> None:
    lower, upper = bounds
    for name, value, lo, hi, active in zip(
        template.param_names, params, lower, upper, active_mask
    ):
        on_lo = np.isfinite(lo) and np.isclose(value, lo, rtol=1e-6, atol=1e-12)
        on_hi = np.isfinite(hi) and np.isclose(value, hi, rtol=1e-6, atol=1e-12)
        if active != 0 or on_lo or on_hi:
            warnings.warn(
                f"Estimate of '{name}' ({value:.6g}) lies on its bound; "
                "the standard error does not describe a constrained optimum.",
                UserWarning,
                stacklevel=3,
            )


def fit_curve(
    model,
    x: Sequence[float],
    y: Sequence[float],
    p0=None,
    weights=None,
    bounds=None,
    options: FitOptions | None = None,
) -> FitResult:
    """Fit a parametric model to paired observations by least squares.

    Args:
        model: ``ModelTemplate``, registered model name, or a plain callable
            ``f(x, a, b, ...)``.
        x: Predictor values. Pairs with a non-finite ``x`` or ``y`` are dropped.
        y: Response values, same length as ``x``.
        p0 (optional): Starting values as a sequence in parameter order or a
            mapping by name. Missing values come from the template's
            starting-value heuristic.
        weights (optional): ``None``, a weighting mode name, an array of
            per-observation weights aligned with ``x``, or a callable
            ``weight(x, y, y_pred)``. See :mod:`nlfit.weighting`.
        bounds (optional): ``(lower, upper)`` sequences or a mapping
            ``name -> (lower, upper)``; ``None`` entries are unbounded.
        options (FitOptions, optional): Solver tolerances and budget.

    Returns:
        FitResult: Estimates, standard errors and the outcome status. Check
        ``result.success`` before using standard errors.

    Raises:
        KeyError: If ``model`` names an unregistered template.
        ValueError: If arguments are malformed (shapes, parameter names,
            negative weights, inverted bounds, no heuristic and no ``p0``).

    Note:
        Fitting needs more distinct ``(x, y)`` pairs with positive weight
        than parameters. With fewer the solver is not run and the status is
        ``insufficient_data``. Zero-weight rows do not count towards the
        residual degrees of freedom.

        Model-based weights are re-evaluated at every iteration, but standard
        errors use the Jacobian of ``sqrt(w)·(y - f)`` with ``w`` held fixed
        at the solution.

        A starting-value heuristic that fails on the data gives a
        ``bad_start`` result; pass ``p0`` to fit such data.
    """
    template = resolve_model(model)
    options = options or FitOptions()
    x_raw, y_raw = _coerce_xy(x, y)
    finite = np.isfinite(x_raw) & np.isfinite(y_raw)
    x_arr = x_raw[finite]
    y_arr = y_raw[finite]

    if weights is not None and not isinstance(weights, str) and not callable(weights):
        w_raw = np.asarray(weights, dtype=float)
        if w_raw.shape != x_raw.shape:
            raise ValueError(
                f"Expected {x_raw.size} weights, got shape {w_raw.shape}."
            )
        weights = w_raw[finite]

    p_init, given = _parse_p0(template, p0)
    parsed_bounds = _parse_bounds(template, bounds)
    n_params = template.n_params
    weighting = resolve_weighting(weights, x_arr, y_arr)

    # Rows with zero weight carry no information about the parameters.
    if weighting.fixed is not None:
        support = weighting.fixed > 0
    else:
        support = np.ones(y_arr.size, dtype=bool)
    n_support = int(support.sum())

    if n_support:
        pairs = np.column_stack([x_arr[support], y_arr[support]])
        n_distinct = int(np.unique(pairs, axis=0).shape[0])
    else:
        n_distinct = 0
    if n_distinct <= n_params:
        message = (
            f"Model '{template.name}' has {n_params} parameters but only "
            f"{n_distinct} distinct observations; the fit is underdetermined."
        )
        logger.warning(message)
        return _build_result(
            template,
            x_arr,
            y_arr,
            p_init,
            FitStatus.INSUFFICIENT_DATA,
            message,
            weighting,
            options,
            n_support=n_support,
        )

    if not np.all(given):
        if template.guess is None:
            raise ValueError(
                f"Model '{template.name}' has no starting-value heuristic; pass p0."
            )
        try:
            guess = template.initial_guess(x_arr, y_arr)
        except ValueError as exc:
            message = str(exc)
            logger.warning(message)
            return _build_result(
                template,
                x_arr,
                y_arr,
                p_init,
                FitStatus.BAD_START,
                message,
                weighting,
                options,
                n_support=n_support,
            )
        p_init = np.where(given, p_init, guess)

    if parsed_bounds is not None:
        clipped = np.clip(p_init, *parsed_bounds)
        if not np.array_equal(clipped, p_init):
            logger.warning(
                "Starting values for '%s' moved inside bounds: %s -> %s",
                template.name,
                p_init,
                clipped,
            )
        p_init = clipped

    def weighted_residuals(theta):
        y_pred = template(x_arr, *theta)
        w = weighting(x_arr, y_arr, y_pred)
        with np.errstate(all="ignore"):
            return np.sqrt(w) * (y_arr - y_pred)

    if not np.all(np.isfinite(weighted_residuals(p_init))):
        message = (
            f"Model '{template.name}' is not finite at the starting values "
            f"{dict(zip(template.param_names, p_init))}."
        )
        logger.warning(message)
        return _build_result(
            template,
            x_arr,
            y_arr,
            p_init,
            FitStatus.BAD_START,
            message,
            weighting,
            options,
            n_support=n_support,
        )

    solver_kwargs = dict(
        ftol=options.ftol,
        xtol=options.xtol,
        gtol=options.gtol,
        max_nfev=options.max_nfev,
        x_scale="jac",
    )
    if parsed_bounds is None:
        solver_kwargs["method"] = "lm"
    else:
        solver_kwargs["method"] = "trf"
        solver_kwargs["bounds"] = parsed_bounds

    try:
        sol = least_squares(weighted_residuals, p_init, **solver_kwargs)
    except (ValueError, np.linalg.LinAlgError) as exc:
        message = f"Solver stopped with an error: {exc}"
        logger.warning("Fit of '%s' diverged: %s", template.name, exc)
        return _build_result(
            template,
            x_arr,
            y_arr,
            p_init,
            FitStatus.DIVERGED,
            message,
            weighting,
            options,
            n_support=n_support,
        )

    theta = np.asarray(sol.x, dtype=float)
    ssr = float(np.sum(sol.fun**2))
    logger.debug(
        "Solver for '%s' finished: status=%s nfev=%s ssr=%.6g",
        template.name,
        sol.status,
        sol.nfev,
        ssr,
    )

    if not (np.all(np.isfinite(theta)) and np.isfinite(ssr)):
        status = FitStatus.DIVERGED
        message = "Estimates or sum of squares became non-finite."
        covariance = None
    elif sol.status == 0:
        status = FitStatus.NOT_CONVERGED
        message = f"Iteration budget of {options.max_nfev} evaluations exhausted."
        covariance = None
    elif sol.status < 0:
        status = FitStatus.DIVERGED
        message = str(sol.message)
        covariance = None
    else:
        jac = np.asarray(sol.jac, dtype=float)
        if weighting.depends_on_model:
            jac = _fixed_weight_jacobian(template, x_arr, y_arr, theta, weighting)
        covariance = _covariance(jac, ssr, n_support - n_params)
        if covariance is None:
            status = FitStatus.SINGULAR
            message = "Jacobian is singular at the solution; parameters are not identifiable."
        else:
            status = FitStatus.CONVERGED
            message = str(sol.message)

    if status is not FitStatus.CONVERGED:
        logger.warning("Fit of '%s' failed (%s): %s", template.name, status.value, message)
    elif parsed_bounds is not None:
        _warn_on_bounds(template, theta, parsed_bounds, np.asarray(sol.active_mask))

    params = theta if status is not FitStatus.DIVERGED else p_init
    return _build_result(
        template,
        x_arr,
        y_arr,
        params,
        status,
        message,
        weighting,
        options,
        covariance=covariance,
        nfev=sol.nfev,
        n_support=n_support,
    )
