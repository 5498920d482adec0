"""
Parametric model templates for nonlinear curve fitting.

This subpackage holds the ``ModelTemplate`` type, the name registry that the
fitter resolves model names against, and the built-in model families.

Modules:
    registry:
        ``ModelTemplate`` plus ``register_model``/``get_model``/
        ``list_models``. Templates can also be built from plain callables
        by signature inspection.

    library:
        Linear, polynomial, exponential growth/decay, Michaelis-Menten,
        Hill and sinusoid templates, each with a starting-value heuristic.

Design Principle:
    Templates are pure functions of ``(x, *params)``. They know nothing about
    weighting, solvers or reporting.
"""

from .library import (
    CUBIC,
    EXPONENTIAL_DECAY,
    EXPONENTIAL_GROWTH,
    HILL,
    LINEAR,
    MICHAELIS_MENTEN,
    QUADRATIC,
    SINUSOID,
    polynomial_model,
)
from .registry import (
    MODELS,
    ModelTemplate,
    get_model,
    list_models,
    register_model,
    resolve_model,
)

__all__ = [
    "ModelTemplate",
    "MODELS",
    "get_model",
    "list_models",
    "register_model",
    "resolve_model",
    "polynomial_model",
    "LINEAR",
    "QUADRATIC",
    "CUBIC",
    "EXPONENTIAL_GROWTH",
    "EXPONENTIAL_DECAY",
    "MICHAELIS_MENTEN",
    "HILL",
    "SINUSOID",
]
