"""
Queue model library.

Seven parametric families of a queue position decreasing to zero. Each is
registered against its ``ModelType`` so the engine can dispatch without
knowing the individual models.

Usage:
    from queue_estimator.models import FitData, create_model
    from queue_estimator.types import ModelType

    result = create_model(ModelType.LINEAR).fit(FitData.from_samples(samples))
"""

from typing import Dict

from ..types import ModelType
from .base import (
    CurveModel,
    FitData,
    NonlinearModel,
    r_squared,
    remaining_to_eta_ms,
)
from .closed_form import LinearModel, LogarithmicModel, QuadraticModel
from .nonlinear import ExponentialModel, HyperbolicModel, PowerLawModel, TangentModel

MODEL_CLASSES = {
    ModelType.LINEAR: LinearModel,
    ModelType.QUADRATIC: QuadraticModel,
    ModelType.LOGARITHMIC: LogarithmicModel,
    ModelType.EXPONENTIAL: ExponentialModel,
    ModelType.POWER_LAW: PowerLawModel,
    ModelType.TANGENT: TangentModel,
    ModelType.HYPERBOLIC: HyperbolicModel,
}


def create_model(model_type: ModelType) -> CurveModel:
    """
    Factory function to create a model instance.

    Args:
        model_type: Which model to create

    Returns:
        CurveModel for ``model_type``
    """
    if model_type not in MODEL_CLASSES:
        raise ValueError(f"Unknown model type: {model_type}. "
                         f"Available: {[m.key for m in MODEL_CLASSES]}")
    return MODEL_CLASSES[model_type]()


def default_registry() -> Dict[ModelType, CurveModel]:
    """One instance of every model, keyed by type."""
    return {model_type: create_model(model_type) for model_type in MODEL_CLASSES}


__all__ = [
    # Base
    "CurveModel",
    "NonlinearModel",
    "FitData",
    "r_squared",
    "remaining_to_eta_ms",
    # Models
    "LinearModel",
    "QuadraticModel",
    "LogarithmicModel",
    "ExponentialModel",
    "PowerLawModel",
    "TangentModel",
    "HyperbolicModel",
    # Registry
    "MODEL_CLASSES",
    "create_model",
    "default_registry",
]
