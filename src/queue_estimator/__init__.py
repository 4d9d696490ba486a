"""
Queue Estimator - time-to-front estimation for server queues.

Records queue positions as they are announced, fits several parametric
curves to the resulting time series, and reports when the queue is expected
to reach position zero together with the goodness-of-fit of each model.

Usage:
    from queue_estimator import EstimatorConfig, QueueTracker

    tracker = QueueTracker(EstimatorConfig())
    tracker.add_report_listener(on_report)
    tracker.on_position(412)
"""

from .buffer import SampleBuffer
from .config import EstimatorConfig, FitSettings, default_config_path
from .engine import MAX_HORIZON_MS, FitEngine
from .export import SampleExporter, read_samples
from .optimize import (
    ConvergenceError,
    DegenerateFitError,
    FitError,
    fit_least_squares,
)
from .parsing import extract_queue_position
from .rate import RateMonitor
from .tracker import QueueTracker
from .types import (
    EstimateLine,
    FitReport,
    FitResult,
    ModelType,
    RateAdvisory,
    Sample,
    SessionPhase,
    StatusReport,
)

__version__ = "0.3.0"

__all__ = [
    # Types
    "EstimateLine",
    "FitReport",
    "FitResult",
    "ModelType",
    "RateAdvisory",
    "Sample",
    "SessionPhase",
    "StatusReport",
    # Configuration
    "EstimatorConfig",
    "FitSettings",
    "default_config_path",
    # Core
    "SampleBuffer",
    "RateMonitor",
    "FitEngine",
    "MAX_HORIZON_MS",
    "QueueTracker",
    # Optimizer
    "fit_least_squares",
    "FitError",
    "DegenerateFitError",
    "ConvergenceError",
    # I/O helpers
    "SampleExporter",
    "read_samples",
    "extract_queue_position",
]
