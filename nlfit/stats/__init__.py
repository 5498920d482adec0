"""
Statistical utilities for curve fitting.

This subpackage provides the numerical routines that sit around a nonlinear
fit: straight-line regression for linearised starting values, Student-t
intervals and p-values for parameter estimates, and nested-model comparison.
All functions operate on arrays, primitive types, or duck-typed fit results.

Modules:
    regression:
        Closed-form ordinary least squares with standard errors, 95%
        half-widths and a slope p-value.

    inference:
        t critical values, confidence intervals, two-sided p-values, AICc
        and the extra-sum-of-squares F test.

Design Principle:
    This subpackage has no dependencies on the models/ subpackage or the
    fitter, so it can be independently tested.
"""

from .inference import (
    aicc,
    compare_fits,
    t_confidence_interval,
    t_critical,
    two_sided_p_value,
)
from .regression import linear_regression

__all__ = [
    "linear_regression",
    "aicc",
    "compare_fits",
    "t_confidence_interval",
    "t_critical",
    "two_sided_p_value",
]
