import dataclasses

import numpy as np
import pytest

from nlfit import FitOptions, fit_curve
from nlfit.schema import COLUMNS


def test_defaults():
    options = FitOptions()
    assert options.max_nfev == 2000
    assert options.confidence_level == 0.95


@pytest.mark.parametrize(
    "changes",
    [{"max_nfev": 0}, {"ftol": 0.0}, {"gtol": -1.0}, {"confidence_level": 1.0}],
)
def test_invalid_options_raise(changes):
    with pytest.raises(ValueError):
        FitOptions(**changes)


def test_replace_returns_new_options():
    options = FitOptions()
    looser = options.replace(ftol=1e-6)
    assert looser.ftol == 1e-6
    assert options.ftol == 1e-10
    with pytest.raises(dataclasses.FrozenInstanceError):
        options.ftol = 1.0


def test_confidence_level_flows_into_result():
    x = np.linspace(0.0, 5.0, 8)
    y = 1.0 + 2.0 * x + 0.05 * np.cos(5.0 * x)
    result = fit_curve("linear", x, y, options=FitOptions(confidence_level=0.9))
    assert result.confidence_level == 0.9
    narrow = result.confidence_intervals()
    wide = result.confidence_intervals(0.99)
    assert (wide["upper"] - wide["lower"]).gt(narrow["upper"] - narrow["lower"]).all()


def test_result_column_names():
    assert COLUMNS.se("km") == "km_se"
    assert COLUMNS.n_obs == "n"
