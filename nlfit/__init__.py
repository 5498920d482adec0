"""
A Python package for fitting nonlinear models to paired observations.

Estimates parameters of exponential, hyperbolic, sinusoidal and polynomial
models by (optionally weighted) least squares, with standard errors,
t-based confidence intervals and p-values.

Modules:
    - observations: Builds clean observation sets from pairs, arrays and DataFrames.
    - models: Model templates, the model registry and built-in model families.
    - weighting: Residual weighting schemes.
    - fitting: The Levenberg-Marquardt fitter and its immutable result type.
    - grouped: Per-group fits over categorical factors and group summaries.
    - reporting: Parameter tables and printed fit summaries.
    - stats: Straight-line regression, t inference and nested-model comparison.
"""

__version__ = "1.0.0"

from .config import FitOptions
from .fitting import FitResult, FitStatus, fit_curve
from .grouped import fit_groups, summarize_groups
from .models import (
    ModelTemplate,
    get_model,
    list_models,
    polynomial_model,
    register_model,
)
from .observations import ObservationSet
from .reporting import (
    format_estimate,
    format_fit_report,
    parameter_table,
    print_fit_report,
    round_to_uncertainty,
)
from .stats import compare_fits, linear_regression

__all__ = [
    # Data
    "ObservationSet",
    # Models
    "ModelTemplate",
    "get_model",
    "list_models",
    "polynomial_model",
    "register_model",
    # Fitting
    "FitOptions",
    "FitResult",
    "FitStatus",
    "fit_curve",
    "fit_groups",
    "summarize_groups",
    "compare_fits",
    "linear_regression",
    # Reporting
    "format_estimate",
    "format_fit_report",
    "parameter_table",
    "print_fit_report",
    "round_to_uncertainty",
]
