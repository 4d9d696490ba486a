"""
Data types for queue position tracking and ETA estimation.

These types represent the recorded position samples, the per-model curve
fit results, the ranked fit report and the status messages handed to the
presentation layer.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class ModelType(Enum):
    """
    Parametric queue models, in enumeration (tie-break) order.

    Each member carries a display name and the formula it fits. Fitting and
    ETA logic lives in the model registry (see ``queue_estimator.models``).
    """
    LINEAR = ("linear", "Linear", "P(t) = A - B·t")
    QUADRATIC = ("quadratic", "Quadratic", "P(t) = A + B·t + C·t²")
    LOGARITHMIC = ("logarithmic", "Logarithmic", "P(t) = A - B·ln(t+1)")
    EXPONENTIAL = ("exponential", "Exponential", "P(t) = A·e^(-B·t) - C")
    POWER_LAW = ("power_law", "Power Law", "P(t) = A·(t+1)^(-B) + C")
    TANGENT = ("tangent", "Tangent", "P(t) = A·tan(B - k·t) - D")
    HYPERBOLIC = ("hyperbolic", "Hyperbolic", "P(t) = A/(t+B) - C")

    def __init__(self, key: str, display_name: str, formula: str):
        self.key = key
        self.display_name = display_name
        self.formula = formula

    @property
    def order(self) -> int:
        """Position in enumeration order, used to break goodness-of-fit ties."""
        return list(ModelType).index(self)


def format_number(value: float) -> str:
    """Format a parameter value, switching to scientific notation for extremes."""
    abs_value = abs(value)
    if abs_value >= 1e4 or (0 < abs_value < 1e-4):
        return f"{value:.3e}"
    return f"{value:.4f}"


@dataclass(frozen=True)
class Sample:
    """
    A single queue position observation.

    Attributes:
        t_ms: Milliseconds since the session started (first accepted sample)
        position: Queue position reported at that time
    """
    t_ms: float
    position: int

    @property
    def t_minutes(self) -> float:
        return self.t_ms / 60000.0


@dataclass(frozen=True)
class FitResult:
    """
    Result of fitting one model to a buffer snapshot.

    Attributes:
        model: Which model produced this result
        params: Fitted parameter vector (2-4 components, model specific)
        goodness_of_fit: R² = 1 - SSE/SST (0 when the positions are constant)
        eta_ms: Milliseconds from the last sample until position 0, -1 if unknown
        valid: Whether the fit is structurally sound and plausible
    """
    model: ModelType
    params: Tuple[float, ...]
    goodness_of_fit: float
    eta_ms: int = -1
    valid: bool = True

    def __post_init__(self):
        # An invalid result never carries an ETA
        if not self.valid and self.eta_ms != -1:
            object.__setattr__(self, "eta_ms", -1)

    @classmethod
    def failed(cls, model: ModelType, num_params: int) -> "FitResult":
        """Factory for a model whose fit could not be computed."""
        return cls(
            model=model,
            params=(0.0,) * num_params,
            goodness_of_fit=0.0,
            eta_ms=-1,
            valid=False,
        )

    @property
    def is_usable(self) -> bool:
        """Valid with a positive ETA, i.e. eligible to be reported."""
        return self.valid and self.eta_ms > 0

    @property
    def params_string(self) -> str:
        names = "ABCD" if self.model is not ModelType.TANGENT else "ABkD"
        return ", ".join(
            f"{name}={format_number(value)}"
            for name, value in zip(names, self.params)
        )

    def invalidated(self) -> "FitResult":
        """Copy of this result marked invalid (eta_ms=-1)."""
        return replace(self, valid=False, eta_ms=-1)


@dataclass(frozen=True)
class FitReport:
    """
    All results of one fit pass, with the best and ranked usable results.

    ``best`` is the usable result with the highest goodness-of-fit; ties go to
    the model that comes first in ``ModelType`` order.
    """
    results: Tuple[FitResult, ...] = ()
    generated_at_ms: Optional[float] = None

    @classmethod
    def empty(cls, generated_at_ms: Optional[float] = None) -> "FitReport":
        return cls(results=(), generated_at_ms=generated_at_ms)

    @property
    def ranked_valid(self) -> List[FitResult]:
        usable = [r for r in self.results if r.is_usable]
        return sorted(usable, key=lambda r: (-r.goodness_of_fit, r.model.order))

    @property
    def best(self) -> Optional[FitResult]:
        ranked = self.ranked_valid
        return ranked[0] if ranked else None

    @property
    def has_valid_result(self) -> bool:
        return self.best is not None

    def result_for(self, model: ModelType) -> Optional[FitResult]:
        """Look up the result produced by a given model, if it was attempted."""
        for result in self.results:
            if result.model is model:
                return result
        return None


class SessionPhase(Enum):
    """What the tracker can currently tell the user."""
    COLLECTING = "collecting"
    NO_MODELS_ENABLED = "no-formulas-enabled"
    ALL_FITS_FAILED = "all-fits-failed"
    ESTIMATE_AVAILABLE = "estimate-available"


@dataclass(frozen=True)
class EstimateLine:
    """One displayable estimate: model, local clock ETA, minutes left, R²."""
    model_name: str
    eta_clock: str
    minutes_remaining: int
    goodness_of_fit: float

    @classmethod
    def from_result(cls, result: FitResult, now_ms: float) -> "EstimateLine":
        eta_time = datetime.fromtimestamp((now_ms + result.eta_ms) / 1000.0)
        return cls(
            model_name=result.model.display_name,
            eta_clock=eta_time.strftime("%H:%M:%S"),
            minutes_remaining=result.eta_ms // 60000,
            goodness_of_fit=result.goodness_of_fit,
        )


@dataclass(frozen=True)
class StatusReport:
    """
    Structured message produced for every accepted sample.

    Attributes:
        position: Most recent queue position
        phase: Session phase
        samples_needed: Additional samples required before fitting (COLLECTING)
        estimates: Best estimate only, or every usable one when showing all
        show_all: Whether ``estimates`` is the full ranked list
        report: Underlying fit report, if a fit was run
    """
    position: int
    phase: SessionPhase
    samples_needed: int = 0
    estimates: Tuple[EstimateLine, ...] = ()
    show_all: bool = False
    report: Optional[FitReport] = field(default=None, compare=False)

    def format_lines(self) -> List[str]:
        """Render the report as plain text lines for a chat/console sink."""
        prefix = f"[Queue] Position: {self.position}"

        if self.phase is SessionPhase.COLLECTING:
            return [f"{prefix} | Collecting data... ({self.samples_needed} more needed)"]
        if self.phase is SessionPhase.NO_MODELS_ENABLED:
            return [f"{prefix} | No formulas enabled in config!"]
        if self.phase is SessionPhase.ALL_FITS_FAILED:
            return [f"{prefix} | All curve fits failed"]

        if not self.show_all:
            best = self.estimates[0]
            return [
                f"{prefix} | ETA: {best.eta_clock} (~{best.minutes_remaining} min) | "
                f"{best.model_name} | R²: {best.goodness_of_fit:.4f}"
            ]

        lines = [f"{prefix} | {len(self.estimates)} fit(s) succeeded:"]
        for line in self.estimates:
            lines.append(
                f"  {line.model_name}: ETA {line.eta_clock} (~{line.minutes_remaining} min) | "
                f"R²: {line.goodness_of_fit:.4f}"
            )
        return lines


@dataclass(frozen=True)
class RateAdvisory:
    """
    Windowed average drain rate of the queue.

    Attributes:
        rate_per_minute: Positions cleared per minute over the window
        window_minutes: Elapsed minutes between first and last sample in window
        previous_rate: Rate from the previous check, if any
        increased: True when the rate rose since the previous check
    """
    rate_per_minute: float
    window_minutes: float
    previous_rate: Optional[float] = None
    increased: bool = False
