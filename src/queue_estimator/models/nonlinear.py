"""
Models fitted by bounded nonlinear least squares.

Each model supplies an initial guess derived from the data, box bounds and
a projection that keep parameters in their physically meaningful domain,
and the model values together with the analytic Jacobian.
"""

import math
from typing import Optional, Tuple

import numpy as np

from ..optimize import FitError
from ..types import ModelType
from .base import FitData, NonlinearModel, tangent_line_remaining


class ExponentialModel(NonlinearModel):
    """
    Shifted exponential: P(t) = A·e^(-B·t) - C

    Domain: A >= 1, 1e-6 <= B <= 5, C >= 0.
    """

    model_type = ModelType.EXPONENTIAL

    def initial_guess(self, data: FitData) -> np.ndarray:
        first = data.p_first
        last = float(data.positions[-1])
        span = data.t_max

        a = first * 1.2      # Slightly above the initial position
        b = 0.1              # Moderate decay rate
        if first > last > 0 and span > 0:
            b = math.log(first / max(1.0, last)) / span
            b = max(0.001, min(b, 2.0))
        return np.array([a, b, 0.0])

    def bounds(self, data: FitData) -> Tuple[np.ndarray, np.ndarray]:
        return np.array([1.0, 1e-6, 0.0]), np.array([np.inf, 5.0, np.inf])

    def project(self, params: np.ndarray, data: FitData) -> np.ndarray:
        a, b, c = params
        return np.array([max(1.0, a), max(1e-6, min(b, 5.0)), max(0.0, c)])

    def evaluate(self, params: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        a, b, c = params
        exp_term = np.exp(-b * times)

        values = a * exp_term - c
        jacobian = np.column_stack([
            exp_term,                    # dP/dA
            -a * times * exp_term,       # dP/dB
            -np.ones_like(times),        # dP/dC
        ])
        return values, jacobian

    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        a, b, c = params
        if a > c > 0 and b > 0:
            t_zero = math.log(a / c) / b
            return t_zero - data.t_last

        # No algebraic zero: follow the tangent at the last observation
        slope = -a * b * math.exp(-b * data.t_last)
        return tangent_line_remaining(data.p_last, slope)


class PowerLawModel(NonlinearModel):
    """
    Power law: P(t) = A·(t+1)^(-B) + C

    Domain: A >= 1, 0.01 <= B <= 3, C >= 0. The curve only reaches zero for
    C < 0, which the domain excludes, so in practice it yields no ETA.
    """

    model_type = ModelType.POWER_LAW

    def initial_guess(self, data: FitData) -> np.ndarray:
        return np.array([data.p_first * 2, 0.5, 0.0])

    def bounds(self, data: FitData) -> Tuple[np.ndarray, np.ndarray]:
        return np.array([1.0, 0.01, 0.0]), np.array([np.inf, 3.0, np.inf])

    def project(self, params: np.ndarray, data: FitData) -> np.ndarray:
        a, b, c = params
        return np.array([max(1.0, a), max(0.01, min(b, 3.0)), max(0.0, c)])

    def evaluate(self, params: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        a, b, c = params
        t_plus_1 = times + 1
        power_term = np.power(t_plus_1, -b)

        values = a * power_term + c
        jacobian = np.column_stack([
            power_term,
            -a * power_term * np.log(t_plus_1),
            np.ones_like(times),
        ])
        return values, jacobian

    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        a, b, c = params
        if c >= 0 or a <= 0 or b <= 0:
            return None
        t_zero = (-c / a) ** (-1.0 / b) - 1
        return t_zero - data.t_last


class TangentModel(NonlinearModel):
    """
    Tangent: P(t) = A·tan(B - k·t) - D

    Captures both decelerating (argument above 0) and accelerating
    (argument below 0) phases. The argument is kept at least ``MARGIN``
    away from ±π/2 by the projection. If it still has to be clamped when
    scoring the final fit, the fit is rejected.
    """

    model_type = ModelType.TANGENT
    NUM_PARAMS = 4
    MAX_EVALUATIONS = 5000
    MARGIN = 0.01
    MIN_B = 0.1

    @property
    def _arg_limit(self) -> float:
        return math.pi / 2 - self.MARGIN

    def initial_guess(self, data: FitData) -> np.ndarray:
        a = max(data.p_first, 1.0)
        b = math.pi / 4          # tan(B) = 1, so A·tan(B) matches the first sample
        last = float(data.positions[-1])
        span = data.t_max

        k = 1e-3
        if span > 0 and last < data.p_first:
            k = (b - math.atan(last / a)) / span
        return np.array([a, b, k, 0.0])

    def bounds(self, data: FitData) -> Tuple[np.ndarray, np.ndarray]:
        # Box for k uses the largest B; project() applies the B-dependent limit
        span = data.t_max
        k_max = (self._arg_limit + math.pi / 2 - 2 * self.MARGIN) / span if span > 0 else np.inf
        lower = np.array([1.0, self.MIN_B, 0.0, 0.0])
        upper = np.array([np.inf, self._arg_limit, k_max, np.inf])
        return lower, upper

    def project(self, params: np.ndarray, data: FitData) -> np.ndarray:
        a, b, k, d = params
        a = max(1.0, a)
        b = max(self.MIN_B, min(b, self._arg_limit))
        k = max(0.0, k)
        span = data.t_max
        if span > 0:
            # Keep B - k·t_max strictly above -π/2 + MARGIN
            k = min(k, (b + math.pi / 2 - 2 * self.MARGIN) / span)
        return np.array([a, b, k, max(0.0, d)])

    def _arguments(self, params: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, bool]:
        _, b, k, _ = params
        raw = b - k * times
        limit = self._arg_limit
        clamped = np.clip(raw, -limit, limit)
        return clamped, bool(np.any(raw != clamped))

    def evaluate(self, params: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        a, _, _, d = params
        u, _ = self._arguments(params, times)
        tan_u = np.tan(u)
        sec2_u = 1 + tan_u * tan_u

        values = a * tan_u - d
        jacobian = np.column_stack([
            tan_u,
            a * sec2_u,
            -a * times * sec2_u,
            -np.ones_like(times),
        ])
        return values, jacobian

    def goodness_of_fit(self, params: np.ndarray, data: FitData) -> float:
        _, clamped = self._arguments(params, data.times)
        if clamped:
            raise FitError("Tangent argument clamped near ±π/2")
        return super().goodness_of_fit(params, data)

    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        a, b, k, d = params
        if k <= 0 or a == 0:
            return None
        t_zero = (b - math.atan(d / a)) / k
        return t_zero - data.t_last


class HyperbolicModel(NonlinearModel):
    """
    Hyperbolic: P(t) = A/(t+B) - C

    Domain: A >= 1, B >= 0.01, C >= 0.
    """

    model_type = ModelType.HYPERBOLIC

    def initial_guess(self, data: FitData) -> np.ndarray:
        first = data.p_first
        last = float(data.positions[-1])
        span = data.t_max

        # With C = 0, two points fix B: first·B = last·(span + B)
        b = 1.0
        if first > last > 0 and span > 0:
            b = last * span / (first - last)
        b = max(0.01, b)
        return np.array([max(1.0, first * b), b, 0.0])

    def bounds(self, data: FitData) -> Tuple[np.ndarray, np.ndarray]:
        return np.array([1.0, 0.01, 0.0]), np.array([np.inf, np.inf, np.inf])

    def project(self, params: np.ndarray, data: FitData) -> np.ndarray:
        a, b, c = params
        return np.array([max(1.0, a), max(0.01, b), max(0.0, c)])

    def evaluate(self, params: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        a, b, c = params
        shifted = times + b

        values = a / shifted - c
        jacobian = np.column_stack([
            1 / shifted,
            -a / (shifted * shifted),
            -np.ones_like(times),
        ])
        return values, jacobian

    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        a, b, c = params
        if c > 0 and a > 0:
            t_zero = a / c - b
            return t_zero - data.t_last

        shifted = data.t_last + b
        slope = -a / (shifted * shifted)
        return tangent_line_remaining(data.p_last, slope)
