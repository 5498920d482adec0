"""Model templates and the name registry used by the fitter."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

import numpy as np

GuessFunction = Callable[[np.ndarray, np.ndarray], Sequence[float]]


@dataclass(frozen=True)
class ModelTemplate:
    """A named parametric curve ``f(x, *params) -> y``.

    Attributes:
        name: Registry key and the label used in reports.
        func: Vectorised model function taking the predictor array followed
            by one positional argument per parameter.
        param_names: Parameter names in the order ``func`` expects them.
        description: Human-readable formula.
        guess: Optional heuristic ``guess(x, y)`` returning starting values
            in ``param_names`` order.
    """

    name: str
    func: Callable[..., np.ndarray]
    param_names: tuple[str, ...]
    description: str = ""
    guess: Optional[GuessFunction] = None

    def __post_init__(self):
        if not self.param_names:
            raise ValueError(f"Model '{self.name}' must declare at least one parameter.")
        if len(set(self.param_names)) != len(self.param_names):
            raise ValueError(f"Model '{self.name}' has duplicate parameter names.")
        object.__setattr__(self, "param_names", tuple(self.param_names))

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    def __call__(self, x, *params) -> np.ndarray:
        x_arr = np.asarray(x, dtype=float)
        with np.errstate(all="ignore"):
            y = self.func(x_arr, *params)
        return np.broadcast_to(np.asarray(y, dtype=float), x_arr.shape)

    def initial_guess(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Return starting values from the template heuristic.

        Raises:
            ValueError: If the template has no heuristic, the heuristic
                fails on this data, or it returns the wrong number of finite
                values.
        """
        if self.guess is None:
            raise ValueError(
                f"Model '{self.name}' has no starting-value heuristic; pass p0."
            )
        try:
            with np.errstate(all="ignore"):
                p0 = np.asarray(
                    self.guess(np.asarray(x, float), np.asarray(y, float)), float
                )
        except (ValueError, ArithmeticError) as exc:
            raise ValueError(
                f"Starting-value heuristic for '{self.name}' failed on this data "
                f"({exc}); pass p0."
            ) from exc
        if p0.shape != (self.n_params,) or not np.all(np.isfinite(p0)):
            raise ValueError(
                f"Starting-value heuristic for '{self.name}' failed on this data; pass p0."
            )
        return p0

    @classmethod
    def from_function(
        cls,
        func: Callable[..., np.ndarray],
        name: str | None = None,
        description: str = "",
        guess: Optional[GuessFunction] = None,
    ) -> "ModelTemplate":
        """Build a template from a plain ``f(x, a, b, ...)`` callable.

        Parameter names are read from the signature; every positional
        parameter after the first is a model parameter.
        """
        params = [
            p
            for p in inspect.signature(func).parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
        if len(params) < 2:
            raise ValueError(
                "Model function must take the predictor followed by at least one parameter."
            )
        return cls(
            name=name or getattr(func, "__name__", "custom"),
            func=func,
            param_names=tuple(p.name for p in params[1:]),
            description=description or (inspect.getdoc(func) or ""),
            guess=guess,
        )


MODELS: Dict[str, ModelTemplate] = {}


def register_model(template: ModelTemplate, replace: bool = False) -> ModelTemplate:
    """Register a template under its name.

    Raises:
        ValueError: If the name is already registered and ``replace`` is false.
    """
    if template.name in MODELS and not replace:
        raise ValueError(
            f"Model '{template.name}' is already registered. "
            "Pass replace=True to overwrite it."
        )
    MODELS[template.name] = template
    return template


def get_model(name: str) -> ModelTemplate:
    if name not in MODELS:
        available = ", ".join(sorted(MODELS))
        raise KeyError(f"Unknown model: {name}. Available models: {available}")
    return MODELS[name]


def list_models() -> list[str]:
    """Return all registered model names."""
    return sorted(MODELS)


def resolve_model(model) -> ModelTemplate:
    """Accept a template, a registered name, or a plain callable."""
    if isinstance(model, ModelTemplate):
        return model
    if isinstance(model, str):
        return get_model(model)
    if callable(model):
        return ModelTemplate.from_function(model)
    raise TypeError(f"Cannot interpret {model!r} as a model.")
