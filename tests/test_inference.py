import math

import numpy as np
import pytest

from nlfit import compare_fits, fit_curve, linear_regression
from nlfit.stats.inference import (
    aicc,
    t_confidence_interval,
    t_critical,
    two_sided_p_value,
)


def test_t_critical_matches_tables():
    assert t_critical(0.95, 10) == pytest.approx(2.228138851986274)
    assert t_critical(0.99, 5) == pytest.approx(4.032142983557536)
    assert math.isnan(t_critical(0.95, 0))
    with pytest.raises(ValueError):
        t_critical(1.0, 10)


def test_t_confidence_interval_is_symmetric():
    lower, upper = t_confidence_interval([1.0, 5.0], [0.1, 0.2], 10)
    assert np.allclose((lower + upper) / 2.0, [1.0, 5.0])
    assert np.allclose(upper - lower, 2.0 * 2.228138851986274 * np.array([0.1, 0.2]))


def test_two_sided_p_value():
    assert two_sided_p_value(2.228138851986274, 10) == pytest.approx(0.05)
    assert two_sided_p_value(0.0, 4) == pytest.approx(1.0)
    arr = two_sided_p_value(np.array([-2.228138851986274, 2.228138851986274]), 10)
    assert np.allclose(arr, 0.05)
    assert math.isnan(two_sided_p_value(1.0, 0))


def test_aicc_needs_enough_observations():
    assert math.isnan(aicc(1.0, 3, 2))
    expected = 10 * math.log(2.0 / 10) + 2 * 3 + (2 * 3 * 4) / (10 - 3 - 1)
    assert aicc(2.0, 10, 2) == pytest.approx(expected)


def test_linear_regression_on_exact_line():
    x = np.array([0.0, 1.0, 2.0, 3.0, 4.0])
    out = linear_regression(x, 3.0 - 0.5 * x)
    assert out["m"] == pytest.approx(-0.5)
    assert out["b"] == pytest.approx(3.0)
    assert out["r2"] == pytest.approx(1.0)
    assert out["n"] == 5 and out["dof"] == 3


def test_linear_regression_rejects_degenerate_input():
    with pytest.raises(ValueError):
        linear_regression([1.0, 2.0], [1.0, 2.0])
    with pytest.raises(ValueError):
        linear_regression([2.0, 2.0, 2.0], [1.0, 2.0, 3.0])


def test_compare_fits_prefers_quadratic_for_curved_data(rng):
    x = np.linspace(-3.0, 3.0, 30)
    y = 1.0 + 0.5 * x + 0.8 * x**2 + rng.normal(0.0, 0.3, x.size)
    out = compare_fits(fit_curve("linear", x, y), fit_curve("quadratic", x, y))

    assert out["dfn"] == 1
    assert out["dfd"] == 27
    assert out["F"] > 100
    assert out["p_value"] < 1e-6
    assert out["delta_aicc"] < 0
    assert out["preferred"] == "quadratic"


def test_compare_fits_keeps_simpler_model_for_straight_data(rng):
    x = np.linspace(0.0, 10.0, 25)
    y = 2.0 + 0.7 * x + rng.normal(0.0, 0.5, x.size)
    out = compare_fits(fit_curve("linear", x, y), fit_curve("cubic", x, y), alpha=0.001)
    assert out["dfn"] == 2
    assert out["preferred"] == "linear"


def test_compare_fits_validates_inputs():
    x = np.linspace(0.0, 5.0, 8)
    y = 1.0 + x
    linear = fit_curve("linear", x, y + 0.01 * np.sin(7 * x))
    with pytest.raises(ValueError):
        compare_fits(linear, linear)
    with pytest.raises(ValueError):
        compare_fits(linear, fit_curve("quadratic", x[:6], y[:6]))
    failed = fit_curve("quadratic", x[:3], y[:3])
    with pytest.raises(ValueError):
        compare_fits(linear, failed)
