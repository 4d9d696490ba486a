"""
Models with closed-form least squares solutions.

Linear and Logarithmic solve the 2x2 normal equations directly;
Quadratic solves the 3x3 normal equations with Cramer's rule.
"""

import math
from typing import Optional, Tuple

import numpy as np

from ..optimize import DegenerateFitError
from ..types import ModelType
from .base import CurveModel, FitData

DETERMINANT_EPSILON = 1e-10
QUADRATIC_EPSILON = 1e-10   # |C| below this degenerates to a linear solve
LOG_RATIO_LIMIT = 15.0      # e^15 minutes is ~6000 years


def _simple_regression(x: np.ndarray, y: np.ndarray) -> Tuple[float, float]:
    """Least squares ``y = intercept + slope * x``."""
    n = x.shape[0]
    sum_x = float(np.sum(x))
    sum_y = float(np.sum(y))
    sum_x2 = float(x @ x)
    sum_xy = float(x @ y)

    denom = n * sum_x2 - sum_x * sum_x
    if abs(denom) < DETERMINANT_EPSILON:
        raise DegenerateFitError(f"Normal equations singular (denominator {denom:.3e})")

    slope = (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n
    return intercept, slope


class LinearModel(CurveModel):
    """P(t) = A - B·t. The baseline every other model is checked against."""

    model_type = ModelType.LINEAR
    NUM_PARAMS = 2

    def fit_params(self, data: FitData) -> np.ndarray:
        intercept, slope = _simple_regression(data.times, data.positions)
        return np.array([intercept, -slope])

    def predict(self, params: np.ndarray, times: np.ndarray) -> np.ndarray:
        a, b = params
        return a - b * times

    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        a, b = params
        if a <= 0 or b <= 0:
            return None
        return a / b - data.t_last


class QuadraticModel(CurveModel):
    """P(t) = A + B·t + C·t²"""

    model_type = ModelType.QUADRATIC
    NUM_PARAMS = 3

    def fit_params(self, data: FitData) -> np.ndarray:
        t = data.times
        p = data.positions
        powers = [float(np.sum(t ** k)) for k in range(5)]

        normal = np.array([
            [powers[0], powers[1], powers[2]],
            [powers[1], powers[2], powers[3]],
            [powers[2], powers[3], powers[4]],
        ])
        rhs = np.array([float(np.sum(p)), float(t @ p), float((t * t) @ p)])

        det = float(np.linalg.det(normal))
        if abs(det) < DETERMINANT_EPSILON or not math.isfinite(det):
            raise DegenerateFitError(f"Normal equations singular (determinant {det:.3e})")

        # Cramer's rule: replace each column with the right-hand side
        coefficients = []
        for column in range(3):
            replaced = normal.copy()
            replaced[:, column] = rhs
            coefficients.append(float(np.linalg.det(replaced)) / det)
        return np.array(coefficients)

    def predict(self, params: np.ndarray, times: np.ndarray) -> np.ndarray:
        a, b, c = params
        return a + b * times + c * times * times

    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        a, b, c = params

        if abs(c) < QUADRATIC_EPSILON:
            if b >= 0 or a <= 0:
                return None
            t_zero = -a / b
            return t_zero - data.t_last if t_zero > data.t_last else None

        discriminant = b * b - 4 * a * c
        if discriminant < 0:
            return None

        # Numerically stable pair of roots of c·t² + b·t + a = 0
        q = -0.5 * (b + math.copysign(math.sqrt(discriminant), b))
        roots = [q / c]
        if q != 0:
            roots.append(a / q)

        future = [r for r in roots if r > data.t_last]
        if not future:
            return None
        return min(future) - data.t_last


class LogarithmicModel(CurveModel):
    """P(t) = A - B·ln(t+1), fitted as a line in x = ln(t+1)."""

    model_type = ModelType.LOGARITHMIC
    NUM_PARAMS = 2

    def fit_params(self, data: FitData) -> np.ndarray:
        x = np.log(data.times + 1)
        intercept, slope = _simple_regression(x, data.positions)
        return np.array([intercept, -slope])

    def predict(self, params: np.ndarray, times: np.ndarray) -> np.ndarray:
        a, b = params
        return a - b * np.log(times + 1)

    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        a, b = params
        if a <= 0 or b <= 0:
            return None
        ratio = a / b
        if ratio > LOG_RATIO_LIMIT:
            return None
        t_zero = math.exp(ratio) - 1
        return t_zero - data.t_last
