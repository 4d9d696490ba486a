"""
Shared machinery for queue models.

A model turns a ``FitData`` snapshot into a ``FitResult``: it fits its
parameters, scores them with R², and solves for the time its curve reaches
zero. ``fit()`` never raises; numerical failures become an invalid result.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ..optimize import FitError, fit_least_squares
from ..types import FitResult, ModelType, Sample, format_number

logger = logging.getLogger("queue_estimator.models")

TIME_SCALE_MS = 60000.0  # Fit in minutes for numerical stability


@dataclass(frozen=True)
class FitData:
    """
    Arrays a model is fitted against.

    Attributes:
        times: Minutes since the first sample of the snapshot
        positions: Observed queue positions
        t_last: Time of the most recent sample of the full snapshot (minutes).
            ETAs are anchored here, even when ``times`` is a trimmed subset.
        p_last: Position of the most recent sample of the full snapshot
    """
    times: np.ndarray
    positions: np.ndarray
    t_last: float
    p_last: float

    @classmethod
    def from_samples(
        cls,
        samples: Sequence[Sample],
        origin_ms: Optional[float] = None,
        anchor: Optional[Sample] = None,
    ) -> "FitData":
        """
        Build fit arrays from samples.

        Args:
            samples: Samples to fit, oldest first
            origin_ms: Sample time mapped to t=0 (default: first sample)
            anchor: Sample ETAs are measured from (default: last sample)
        """
        if not samples:
            raise FitError("No samples to fit")
        origin = samples[0].t_ms if origin_ms is None else origin_ms
        anchor = anchor or samples[-1]
        times = np.array([(s.t_ms - origin) / TIME_SCALE_MS for s in samples], dtype=np.float64)
        positions = np.array([s.position for s in samples], dtype=np.float64)
        return cls(
            times=times,
            positions=positions,
            t_last=(anchor.t_ms - origin) / TIME_SCALE_MS,
            p_last=float(anchor.position),
        )

    @property
    def size(self) -> int:
        return int(self.positions.shape[0])

    @property
    def t_max(self) -> float:
        return float(np.max(self.times))

    @property
    def p_first(self) -> float:
        return float(self.positions[0])


def r_squared(observed: np.ndarray, predicted: np.ndarray) -> float:
    """R² = 1 - SSE/SST, defined as 0 when the observations are constant."""
    residuals = observed - predicted
    sse = float(residuals @ residuals)
    deviations = observed - np.mean(observed)
    sst = float(deviations @ deviations)
    if sst < 1e-12:
        return 0.0
    return 1.0 - sse / sst


def remaining_to_eta_ms(remaining_minutes: Optional[float]) -> int:
    """Convert minutes-from-last-sample to an ETA in ms, -1 if not positive."""
    if remaining_minutes is None or not math.isfinite(remaining_minutes):
        return -1
    eta_ms = int(round(remaining_minutes * TIME_SCALE_MS))
    return eta_ms if eta_ms > 0 else -1


def tangent_line_remaining(position: float, slope: float) -> Optional[float]:
    """Minutes until ``position`` hits zero following a straight line of ``slope``."""
    if not math.isfinite(slope) or slope >= 0:
        return None
    return position / -slope


class CurveModel(ABC):
    """
    Base class for a parametric queue model.

    Subclasses provide the fitting routine, the prediction function and the
    zero-crossing solver. ``REJECT_NON_POSITIVE_R2`` decides whether a fit
    that explains none of the variance is marked invalid outright or kept
    valid with its ETA left to the solver.
    """

    model_type: ModelType
    NUM_PARAMS: int = 2
    REJECT_NON_POSITIVE_R2: bool = False

    def fit(self, data: FitData) -> FitResult:
        """Fit this model to ``data``. Failures yield ``valid=False``."""
        name = self.model_type.display_name
        try:
            params = self.fit_params(data)
            goodness = self.goodness_of_fit(params, data)
            remaining = self.remaining_minutes(params, data)
        except (FitError, ArithmeticError, np.linalg.LinAlgError, ValueError) as e:
            logger.debug(f"{name} fit failed: {e}")
            return FitResult.failed(self.model_type, self.NUM_PARAMS)

        params = tuple(float(p) for p in params)
        if not math.isfinite(goodness):
            logger.debug(f"{name} fit produced non-finite R²")
            return FitResult.failed(self.model_type, self.NUM_PARAMS)

        if self.REJECT_NON_POSITIVE_R2 and goodness <= 0:
            logger.debug(f"{name} fit rejected: R²={goodness:.4f}")
            return FitResult(self.model_type, params, goodness, eta_ms=-1, valid=False)

        result = FitResult(
            model=self.model_type,
            params=params,
            goodness_of_fit=goodness,
            eta_ms=remaining_to_eta_ms(remaining),
            valid=True,
        )
        logger.debug(f"{name} fit: {result.params_string}, R²={goodness:.4f}, eta={result.eta_ms}ms")
        return result

    def goodness_of_fit(self, params: np.ndarray, data: FitData) -> float:
        return r_squared(data.positions, self.predict(params, data.times))

    @abstractmethod
    def fit_params(self, data: FitData) -> np.ndarray:
        """Return the fitted parameter vector or raise ``FitError``."""
        pass

    @abstractmethod
    def predict(self, params: np.ndarray, times: np.ndarray) -> np.ndarray:
        """Model positions at ``times`` (minutes)."""
        pass

    @abstractmethod
    def remaining_minutes(self, params: np.ndarray, data: FitData) -> Optional[float]:
        """Minutes after ``data.t_last`` until the curve reaches zero, or None."""
        pass


class NonlinearModel(CurveModel):
    """
    Model fitted by bounded least squares with an analytic Jacobian.

    ``bounds`` gives the box domain of the parameters; ``project`` clamps
    whatever a box cannot express. Nonlinear fits that explain no variance
    are rejected.
    """

    NUM_PARAMS = 3
    REJECT_NON_POSITIVE_R2 = True
    MAX_EVALUATIONS = 3000
    COST_TOLERANCE = 1e-8
    PARAM_TOLERANCE = 1e-8

    def fit_params(self, data: FitData) -> np.ndarray:
        if data.size < self.NUM_PARAMS:
            raise FitError(f"Need at least {self.NUM_PARAMS} samples, got {data.size}")

        result = fit_least_squares(
            model=lambda p: self.evaluate(p, data.times),
            x0=self.initial_guess(data),
            target=data.positions,
            bounds=self.bounds(data),
            projector=lambda p: self.project(p, data),
            max_evaluations=self.MAX_EVALUATIONS,
            cost_tolerance=self.COST_TOLERANCE,
            param_tolerance=self.PARAM_TOLERANCE,
        )
        return result.params

    def predict(self, params: np.ndarray, times: np.ndarray) -> np.ndarray:
        values, _ = self.evaluate(params, times)
        return values

    @abstractmethod
    def initial_guess(self, data: FitData) -> np.ndarray:
        pass

    @abstractmethod
    def bounds(self, data: FitData) -> Tuple[np.ndarray, np.ndarray]:
        """(lower, upper) box bounds of the parameters."""
        pass

    @abstractmethod
    def project(self, params: np.ndarray, data: FitData) -> np.ndarray:
        """Clamp ``params`` into the model's parameter domain."""
        pass

    @abstractmethod
    def evaluate(self, params: np.ndarray, times: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return (values, jacobian) at ``times``."""
        pass
