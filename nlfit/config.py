"""Default solver settings for nonlinear fits."""

from __future__ import annotations

from dataclasses import dataclass, replace

DEFAULT_MAX_NFEV = 2000
DEFAULT_FTOL = 1e-10
DEFAULT_XTOL = 1e-10
DEFAULT_GTOL = 1e-10
DEFAULT_CONFIDENCE_LEVEL = 0.95


@dataclass(frozen=True)
class FitOptions:
    """Container for solver tolerances and reporting defaults.

    Attributes:
        max_nfev: Function-evaluation budget for the solver. A fit that spends
            the whole budget is reported as not converged.
        ftol: Stop when the relative reduction of the weighted sum of squares
            in one step falls below this value.
        xtol: Stop when the relative change of the parameter vector falls
            below this value.
        gtol: Stop when the scaled gradient falls below this value.
        confidence_level: Two-sided coverage used for parameter confidence
            intervals in results and reports.
    """

    max_nfev: int = DEFAULT_MAX_NFEV
    ftol: float = DEFAULT_FTOL
    xtol: float = DEFAULT_XTOL
    gtol: float = DEFAULT_GTOL
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL

    def __post_init__(self):
        if self.max_nfev < 1:
            raise ValueError("max_nfev must be >= 1")
        for name in ("ftol", "xtol", "gtol"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive")
        if not 0.0 < self.confidence_level < 1.0:
            raise ValueError("confidence_level must lie strictly between 0 and 1")

    def replace(self, **changes) -> "FitOptions":
        return replace(self, **changes)
