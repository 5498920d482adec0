"""Format fit results as parameter tables and printed summaries.

This module is the reporting boundary between a ``FitResult`` and what a
reader sees: estimates rounded to their standard errors, t-based intervals
and p-values.
"""

from __future__ import annotations

import math

import numpy as np
import pandas as pd

from .fitting import FitResult


def _round_uncertainty(u: float) -> tuple[float, int]:
    """Round an uncertainty to 1 s.f. (2 when the leading digit is 1).

    Returns the rounded uncertainty and the number of decimal places used,
    which may be negative for uncertainties of 10 or more.
    """
    u = abs(float(u))
    if u == 0 or not math.isfinite(u):
        return u, 0
    exponent = math.floor(math.log10(u))
    leading = u / (10**exponent)
    sig_figs = 2 if 1.0 <= leading < 2.0 else 1
    ndigits = sig_figs - 1 - exponent
    ru = round(u, ndigits)
    if ru == 0:
        ndigits += 1
        ru = round(u, ndigits)
    return float(ru), int(ndigits)


def round_to_uncertainty(value: float, uncertainty: float) -> tuple[float, float]:
    """Round a value and its uncertainty to matching precision.

    Args:
        value (float): Estimate.
        uncertainty (float): Standard error or other absolute uncertainty in
            the same units.

    Returns:
        tuple[float, float]: ``(rounded_value, rounded_uncertainty)``. Both are
        returned unchanged when the uncertainty is zero or non-finite.

    Note:
        Original numeric values should be kept for any further calculation;
        rounding is for display only.
    """
    ru, ndigits = _round_uncertainty(uncertainty)
    if ru == 0 or not math.isfinite(ru):
        return float(value), float(uncertainty)
    return float(round(float(value), ndigits)), ru


def format_estimate(value: float, uncertainty: float, unit: str = "") -> str:
    """Format ``value ± uncertainty`` with precision set by the uncertainty."""
    if not math.isfinite(float(value)):
        return f"{value} {unit}".strip()
    ru, ndigits = _round_uncertainty(uncertainty)
    if ru == 0 or not math.isfinite(ru):
        return f"{value:.6g} {unit}".strip()
    dp = max(ndigits, 0)
    v_str = f"{round(float(value), ndigits):.{dp}f}"
    u_str = f"{ru:.{dp}f}"
    return f"{v_str} ± {u_str} {unit}".strip()


def _format_p(p: float) -> str:
    if not np.isfinite(p):
        return "n/a"
    if p < 1e-4:
        return "<0.0001"
    return f"{p:.4f}"


def parameter_table(result: FitResult, level: float | None = None) -> pd.DataFrame:
    """Return a per-parameter table of estimates and t-based inference.

    Args:
        result (FitResult): Fit to report.
        level (float, optional): Confidence level; defaults to the level the
            fit was made with.

    Returns:
        pandas.DataFrame: Indexed by parameter with columns ``estimate``,
        ``std_error``, ``ci_lower``, ``ci_upper``, ``t`` and ``p``.
    """
    ci = result.confidence_intervals(level)
    return pd.DataFrame(
        {
            "estimate": result.params,
            "std_error": result.stderr,
            "ci_lower": ci["lower"].to_numpy(),
            "ci_upper": ci["upper"].to_numpy(),
            "t": result.t_values,
            "p": result.p_values,
        },
        index=pd.Index(list(result.param_names), name="parameter"),
    )


def format_fit_report(result: FitResult, level: float | None = None) -> str:
    """Render a multi-line plain-text summary of a fit."""
    level = result.confidence_level if level is None else level
    lines = [
        f"Model: {result.model}",
        f"Status: {result.status.value} ({result.message})",
        f"Observations: {result.n_obs}  Parameters: {result.n_params}  "
        f"Residual dof: {result.dof}  Weighting: {result.weighting}",
    ]
    if not result.success:
        lines.append("No parameter inference available.")
        return "\n".join(lines)

    table = parameter_table(result, level)
    pct = f"{level * 100:g}%"
    width = max(len(n) for n in result.param_names)
    lines.append(f"  {'parameter':<{width}}  estimate ± SE    {pct} CI    p")
    for name, row in table.iterrows():
        lo, hi = row["ci_lower"], row["ci_upper"]
        lines.append(
            f"  {name:<{width}}  {format_estimate(row['estimate'], row['std_error'])}"
            f"    [{lo:.4g}, {hi:.4g}]    {_format_p(row['p'])}"
        )
    lines.append(
        f"R² = {result.r2:.4f}   residual SE = {result.residual_std_error:.4g}   "
        f"SSR = {result.ssr:.4g}"
    )
    return "\n".join(lines)


def print_fit_report(result: FitResult, level: float | None = None) -> None:
    print(format_fit_report(result, level))


def print_group_summary(summary_df: pd.DataFrame, parameter: str) -> None:
    """Print the output of ``nlfit.grouped.summarize_groups``."""
    print(f"\nSummary of '{parameter}' across groups:")
    if summary_df.empty:
        print("  (no successful fits)")
        return
    level_cols = [
        c
        for c in summary_df.columns
        if c not in {"mean", "sd", "sem", "ci_lower", "ci_upper", "n"}
    ]
    for _, row in summary_df.iterrows():
        label = ", ".join(f"{c}={row[c]}" for c in level_cols)
        n = int(row["n"])
        if pd.notna(row["sem"]):
            print(
                f" - {label}: mean = {format_estimate(row['mean'], row['sem'])} (SEM, n={n})"
            )
        else:
            print(f" - {label}: mean = {row['mean']:.4g} (n={n})")
