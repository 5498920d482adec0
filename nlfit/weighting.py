"""Residual weighting schemes for least-squares fits.

A weight multiplies the squared residual of one observation before the sum
of squares is accumulated, so the fitter minimises ``sum(w * (y - ŷ)**2)``.

Named modes:
    ``none``              every observation counts equally.
    ``relative``          ``1/ŷ²``; counteracts a scatter that grows in
                          proportion to the predicted response.
    ``relative_observed`` ``1/y²``, the same idea using the data.
    ``poisson``           ``1/|ŷ|``; scatter proportional to sqrt(ŷ).
    ``poisson_observed``  ``1/|y|``.

Model-based modes are re-evaluated at every solver iteration. An explicit
array or a callable ``weight(x, y, y_pred)`` may be passed instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

WeightFunction = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]


def _relative(x, y, y_pred):
    return 1.0 / np.square(y_pred)


def _poisson(x, y, y_pred):
    return 1.0 / np.abs(y_pred)


WEIGHTING_MODES = {
    "relative": (_relative, True),
    "relative_observed": (lambda x, y, y_pred: 1.0 / np.square(y), False),
    "poisson": (_poisson, True),
    "poisson_observed": (lambda x, y, y_pred: 1.0 / np.abs(y), False),
}


@dataclass(frozen=True)
class Weighting:
    """Resolved weighting scheme.

    Attributes:
        name: Mode name, ``"explicit"`` for arrays or ``"custom"`` for callables.
        func: Weight function, or ``None`` for unweighted fits.
        depends_on_model: Whether weights change with the predicted response.
        fixed: Precomputed weights for schemes that do not depend on the model.
    """

    name: str
    func: Optional[WeightFunction] = None
    depends_on_model: bool = False
    fixed: Optional[np.ndarray] = None

    @property
    def is_uniform(self) -> bool:
        return self.func is None and self.fixed is None

    def __call__(self, x: np.ndarray, y: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
        if self.fixed is not None:
            return self.fixed
        if self.func is None:
            return np.ones_like(y, dtype=float)
        with np.errstate(all="ignore"):
            return np.broadcast_to(
                np.asarray(self.func(x, y, y_pred), dtype=float), np.shape(y)
            )


def _check_fixed(w: np.ndarray, n: int, name: str) -> np.ndarray:
    if w.shape != (n,):
        raise ValueError(f"Expected {n} weights, got shape {w.shape}.")
    if not np.all(np.isfinite(w)):
        raise ValueError(
            f"Weighting '{name}' produced non-finite weights; "
            "check for zero responses or pass explicit weights."
        )
    if np.any(w < 0):
        raise ValueError("Weights must be non-negative.")
    if not np.any(w > 0):
        raise ValueError("At least one weight must be positive.")
    w = w.copy()
    w.setflags(write=False)
    return w


def check_mode(name: str) -> None:
    """Raise ``ValueError`` unless ``name`` is a known weighting mode."""
    if name != "none" and name not in WEIGHTING_MODES:
        available = ", ".join(["none", *WEIGHTING_MODES])
        raise ValueError(f"Unknown weighting mode: {name}. Available: {available}")


def resolve_weighting(weights, x: np.ndarray, y: np.ndarray) -> Weighting:
    """Turn a user weighting argument into a :class:`Weighting`.

    Args:
        weights: ``None``, a mode name, an array of per-observation weights,
            or a callable ``weight(x, y, y_pred)``.
        x (numpy.ndarray): Predictor values (already cleaned).
        y (numpy.ndarray): Response values (already cleaned).

    Returns:
        Weighting: Resolved scheme. Data-only schemes carry precomputed
        weights.

    Raises:
        ValueError: For unknown mode names, wrong-length arrays, negative or
            non-finite weights.
    """
    n = len(y)
    if weights is None:
        return Weighting(name="none")
    if isinstance(weights, str):
        check_mode(weights)
        if weights == "none":
            return Weighting(name="none")
        func, model_based = WEIGHTING_MODES[weights]
        if model_based:
            return Weighting(name=weights, func=func, depends_on_model=True)
        with np.errstate(all="ignore"):
            fixed = np.asarray(func(x, y, None), dtype=float)
        return Weighting(name=weights, func=func, fixed=_check_fixed(fixed, n, weights))
    if callable(weights):
        return Weighting(name="custom", func=weights, depends_on_model=True)

    fixed = np.asarray(weights, dtype=float)
    return Weighting(name="explicit", fixed=_check_fixed(fixed, n, "explicit"))
