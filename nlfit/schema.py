"""Define standardized column names for fit result DataFrames."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResultColumns:
    """Container for standardized column labels.

    These column names are used in the grouped-fit and parameter tables so
    that summaries, reports and downstream user code agree on spelling.

    Attributes:
        n_obs: Number of observations that entered a fit.
        status: Outcome code of the fit (see ``nlfit.fitting.FitStatus``).
        success: Whether the fit converged with usable standard errors.
        r2: Unweighted coefficient of determination of the fitted curve.
        rse: Residual standard error, ``sqrt(SSR_w / dof)``.
        se_suffix: Suffix appended to a parameter name for its standard error.
    """

    n_obs: str = "n"
    status: str = "status"
    success: str = "success"
    r2: str = "r2"
    rse: str = "residual_se"
    se_suffix: str = "_se"

    def se(self, parameter: str) -> str:
        return f"{parameter}{self.se_suffix}"


COLUMNS = ResultColumns()
