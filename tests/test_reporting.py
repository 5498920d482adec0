import numpy as np
import pandas as pd
import pytest

from nlfit import (
    fit_curve,
    format_estimate,
    format_fit_report,
    parameter_table,
    print_fit_report,
    round_to_uncertainty,
)
from nlfit.reporting import print_group_summary


def test_round_to_uncertainty():
    assert round_to_uncertainty(1.2345, 0.0523) == (1.23, 0.05)
    assert round_to_uncertainty(9.87654, 0.0149) == (9.877, 0.015)
    assert round_to_uncertainty(5.0, 0.0) == (5.0, 0.0)


def test_format_estimate():
    assert format_estimate(123.4, 23) == "120 ± 20"
    assert format_estimate(2.71828, 0.0142) == "2.718 ± 0.014"
    assert format_estimate(1.5, 0.26, "mM") == "1.5 ± 0.3 mM"
    assert format_estimate(1.5, float("nan")) == "1.5"


@pytest.fixture
def decay_fit(rng):
    t = np.linspace(0.0, 10.0, 25)
    y = 70.0 * np.exp(-0.45 * t) + 10.0 + rng.normal(0.0, 1.0, t.size)
    return fit_curve("exponential_decay", t, y)


def test_parameter_table(decay_fit):
    table = parameter_table(decay_fit)
    assert list(table.index) == ["y0", "plateau", "k"]
    assert list(table.columns) == ["estimate", "std_error", "ci_lower", "ci_upper", "t", "p"]
    assert np.all(table["ci_lower"] < table["estimate"])
    assert np.all(table["estimate"] < table["ci_upper"])
    assert table.loc["k", "p"] < 1e-6

    wider = parameter_table(decay_fit, level=0.99)
    assert wider.loc["k", "ci_lower"] < table.loc["k", "ci_lower"]


def test_fit_report_for_success(decay_fit):
    report = format_fit_report(decay_fit)
    assert "Model: exponential_decay" in report
    assert "Status: converged" in report
    assert "95% CI" in report
    assert "R² =" in report


def test_fit_report_for_failure(capsys):
    failed = fit_curve("hill", [1.0, 2.0, 3.0], [1.0, 2.0, 2.5])
    print_fit_report(failed)
    out = capsys.readouterr().out
    assert "insufficient_data" in out
    assert "No parameter inference available." in out


def test_print_group_summary(capsys):
    summary = pd.DataFrame(
        {
            "treatment": ["control", "drug"],
            "mean": [3.0, 6.0],
            "sd": [1.0, np.nan],
            "sem": [0.57735, np.nan],
            "ci_lower": [0.5, np.nan],
            "ci_upper": [5.5, np.nan],
            "n": [3, 1],
        }
    )
    print_group_summary(summary, "km")
    out = capsys.readouterr().out
    assert "treatment=control: mean = 3.0 ± 0.6 (SEM, n=3)" in out
    assert "treatment=drug: mean = 6 (n=1)" in out
