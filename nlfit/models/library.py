"""Built-in model templates with starting-value heuristics.

Models
------
* linear             : intercept + slope·x
* quadratic, cubic   : b0 + b1·x + b2·x² (+ b3·x³)
* exponential_growth : y0·exp(k·x)
* exponential_decay  : (y0 − plateau)·exp(−k·x) + plateau
* michaelis_menten   : vmax·x/(km + x)
* hill               : vmax·xʰ/(kʰ + xʰ)
* sinusoid           : amplitude·sin(2π·frequency·x + phase) + baseline

Every template here is registered on import of ``nlfit.models``.
"""

from __future__ import annotations

import math
from dataclasses import replace

import numpy as np
from numpy.polynomial import polynomial as P
from scipy.signal import lombscargle

from ..stats.regression import linear_regression
from .registry import ModelTemplate, register_model

_PERIODOGRAM_POINTS = 2000


def _sorted_xy(x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    order = np.argsort(x, kind="stable")
    return x[order], y[order]


# ---------------------------------------------------------------------------
# Polynomials
# ---------------------------------------------------------------------------


def polynomial_model(degree: int) -> ModelTemplate:
    """Return a polynomial template ``b0 + b1·x + ... + bd·x^d``.

    The template is not registered; ``quadratic`` and ``cubic`` are.
    """
    if degree < 1:
        raise ValueError("Polynomial degree must be >= 1.")
    names = tuple(f"b{i}" for i in range(degree + 1))

    def func(x, *coeffs):
        return P.polyval(x, coeffs)

    def guess(x, y):
        return P.polyfit(x, y, degree)

    terms = " + ".join(["b0", "b1·x"] + [f"b{i}·x^{i}" for i in range(2, degree + 1)])
    return ModelTemplate(
        name=f"polynomial{degree}",
        func=func,
        param_names=names,
        description=terms,
        guess=guess,
    )


def _linear(x, intercept, slope):
    return intercept + slope * x


def _linear_guess(x, y):
    b, m = P.polyfit(x, y, 1)
    return b, m


# ---------------------------------------------------------------------------
# Exponentials
# ---------------------------------------------------------------------------


def _exponential_growth(x, y0, k):
    return y0 * np.exp(k * x)


def _exponential_growth_guess(x, y):
    sign = 1.0 if np.median(y) >= 0 else -1.0
    pos = sign * y > 0
    if np.sum(pos) >= 2 and np.ptp(x[pos]) > 0:
        reg = linear_regression(x[pos], np.log(sign * y[pos]), min_points=2)
        return sign * math.exp(reg["b"]), reg["m"]
    return float(np.mean(y)) or 1.0, 0.0


def _exponential_decay(x, y0, plateau, k):
    return (y0 - plateau) * np.exp(-k * x) + plateau


def _exponential_decay_guess(x, y):
    xs, ys = _sorted_xy(x, y)
    y0 = float(ys[0])
    plateau = float(ys[-1])
    span = float(xs[-1] - xs[0])
    half = 0.5 * (y0 + plateau)
    t_half = float(xs[np.argmin(np.abs(ys - half))] - xs[0])
    if not t_half > 0:
        t_half = span / 3.0 if span > 0 else 1.0
    return y0, plateau, math.log(2.0) / t_half


# ---------------------------------------------------------------------------
# Hyperbolic (saturation) curves
# ---------------------------------------------------------------------------


def _michaelis_menten(x, vmax, km):
    return vmax * x / (km + x)


def _half_max_x(x, y, vmax):
    xs, ys = _sorted_xy(x, y)
    x_half = float(xs[np.argmin(np.abs(ys - 0.5 * vmax))])
    if x_half > 0:
        return x_half
    positive = xs[xs > 0]
    return float(np.median(positive)) if positive.size else 1.0


def _michaelis_menten_guess(x, y):
    vmax = float(np.max(y))
    return vmax, _half_max_x(x, y, vmax)


def _hill(x, vmax, k, h):
    xh = np.power(x, h)
    return vmax * xh / (np.power(k, h) + xh)


def _hill_guess(x, y):
    vmax = float(np.max(y))
    return vmax, _half_max_x(x, y, vmax), 1.0


# ---------------------------------------------------------------------------
# Sinusoid
# ---------------------------------------------------------------------------


def _sinusoid(x, amplitude, frequency, phase, baseline):
    return amplitude * np.sin(2.0 * np.pi * frequency * x + phase) + baseline


def _sinusoid_guess(x, y):
    """Periodogram peak for the frequency, then a linear sine/cosine solve."""
    xs, ys = _sorted_xy(x, y)
    span = float(xs[-1] - xs[0])
    steps = np.diff(np.unique(xs))
    if span <= 0 or steps.size == 0:
        raise ValueError("Sinusoid guess needs at least two distinct x values.")
    f_lo = 0.5 / span
    f_hi = 0.5 / float(np.median(steps))
    freqs = np.linspace(f_lo, max(f_hi, 2.0 * f_lo), _PERIODOGRAM_POINTS)
    power = lombscargle(xs, ys - ys.mean(), 2.0 * np.pi * freqs)
    frequency = float(freqs[int(np.argmax(power))])

    omega_x = 2.0 * np.pi * frequency * xs
    design = np.column_stack([np.sin(omega_x), np.cos(omega_x), np.ones_like(xs)])
    (a, b, c), *_ = np.linalg.lstsq(design, ys, rcond=None)
    return float(np.hypot(a, b)), frequency, float(np.arctan2(b, a)), float(c)


LINEAR = register_model(
    ModelTemplate(
        name="linear",
        func=_linear,
        param_names=("intercept", "slope"),
        description="intercept + slope·x",
        guess=_linear_guess,
    )
)
QUADRATIC = register_model(replace(polynomial_model(2), name="quadratic"))
CUBIC = register_model(replace(polynomial_model(3), name="cubic"))
EXPONENTIAL_GROWTH = register_model(
    ModelTemplate(
        name="exponential_growth",
        func=_exponential_growth,
        param_names=("y0", "k"),
        description="y0·exp(k·x)",
        guess=_exponential_growth_guess,
    )
)
EXPONENTIAL_DECAY = register_model(
    ModelTemplate(
        name="exponential_decay",
        func=_exponential_decay,
        param_names=("y0", "plateau", "k"),
        description="(y0 − plateau)·exp(−k·x) + plateau",
        guess=_exponential_decay_guess,
    )
)
MICHAELIS_MENTEN = register_model(
    ModelTemplate(
        name="michaelis_menten",
        func=_michaelis_menten,
        param_names=("vmax", "km"),
        description="vmax·x/(km + x)",
        guess=_michaelis_menten_guess,
    )
)
HILL = register_model(
    ModelTemplate(
        name="hill",
        func=_hill,
        param_names=("vmax", "k", "h"),
        description="vmax·x^h/(k^h + x^h)",
        guess=_hill_guess,
    )
)
SINUSOID = register_model(
    ModelTemplate(
        name="sinusoid",
        func=_sinusoid,
        param_names=("amplitude", "frequency", "phase", "baseline"),
        description="amplitude·sin(2π·frequency·x + phase) + baseline",
        guess=_sinusoid_guess,
    )
)
