"""
Multi-model fit engine.

Fits every enabled model to a buffer snapshot, using Linear as the baseline
the other models are validated against, and collects the outcome in a
``FitReport``.
"""

import logging
from typing import Dict, Optional, Sequence

from .config import FitSettings
from .models import CurveModel, FitData, default_registry
from .types import FitReport, FitResult, ModelType, Sample

logger = logging.getLogger("queue_estimator.engine")

MIN_SAMPLES_FOR_FIT = 3
MAX_HORIZON_MS = 7 * 24 * 3600 * 1000   # ETAs beyond a week are not credible


def validate_against_baseline(result: FitResult, baseline_eta_ms: int) -> FitResult:
    """
    Reject a non-linear result that finishes sooner than the linear baseline.

    A fancier model predicting an acceleration the straight line does not see
    is treated as an overfitting artifact.
    """
    if result.model is ModelType.LINEAR:
        return result
    if result.eta_ms > 0 and baseline_eta_ms > 0 and result.eta_ms < baseline_eta_ms:
        logger.debug(
            f"{result.model.display_name} rejected: ETA {result.eta_ms}ms "
            f"sooner than linear {baseline_eta_ms}ms"
        )
        return result.invalidated()
    return result


def validate_horizon(result: FitResult, max_horizon_ms: int = MAX_HORIZON_MS) -> FitResult:
    """Reject any ETA beyond the maximum horizon."""
    if result.eta_ms > max_horizon_ms:
        logger.debug(f"{result.model.display_name} rejected: ETA {result.eta_ms}ms beyond horizon")
        return result.invalidated()
    return result


class FitEngine:
    """
    Runs all enabled models against one snapshot.

    The engine holds no session state, so ``fit_all`` is a pure function of
    its arguments: identical snapshots and settings give identical reports.

    Example:
        engine = FitEngine()
        report = engine.fit_all(buffer.snapshot(), config.snapshot(), now_ms)
        if report.best:
            print(report.best.model.display_name, report.best.eta_ms)
    """

    def __init__(self, models: Optional[Dict[ModelType, CurveModel]] = None):
        """
        Initialize the engine.

        Args:
            models: Model registry, defaults to one instance of every model
        """
        self.models = models if models is not None else default_registry()

    def fit_all(
        self,
        samples: Sequence[Sample],
        settings: FitSettings,
        now_ms: Optional[float] = None,
    ) -> FitReport:
        """
        Fit every enabled model to ``samples``.

        Args:
            samples: Buffer snapshot, oldest first
            settings: Frozen settings for this pass
            now_ms: Wall-clock time the report is generated at

        Returns:
            FitReport with one result per attempted model; empty when there
            are fewer than three samples
        """
        if len(samples) < MIN_SAMPLES_FOR_FIT:
            logger.warning(f"Not enough data points for fitting: {len(samples)}")
            return FitReport.empty(now_ms)

        full_data = FitData.from_samples(samples)
        results = []
        baseline_eta_ms = -1

        if settings.is_enabled(ModelType.LINEAR):
            linear = self._fit_one(ModelType.LINEAR, self._linear_data(samples, settings))
            results.append(linear)
            if linear.valid:
                baseline_eta_ms = linear.eta_ms

        for model_type in settings.enabled_models:
            if model_type is ModelType.LINEAR:
                continue
            results.append(self._fit_one(model_type, full_data))

        validated = tuple(
            validate_horizon(validate_against_baseline(result, baseline_eta_ms))
            for result in results
        )
        report = FitReport(results=validated, generated_at_ms=now_ms)

        logger.debug(
            f"Fit {len(validated)} model(s) on {len(samples)} samples, "
            f"{len(report.ranked_valid)} usable"
        )
        return report

    def _fit_one(self, model_type: ModelType, data: FitData) -> FitResult:
        model = self.models.get(model_type)
        if model is None:
            logger.warning(f"No model registered for {model_type.display_name}")
            return FitResult.failed(model_type, 0)

        try:
            return model.fit(data)
        except Exception:
            logger.exception(f"Unexpected error fitting {model_type.display_name}")
            return FitResult.failed(model_type, model.NUM_PARAMS)

    @staticmethod
    def _linear_data(samples: Sequence[Sample], settings: FitSettings) -> FitData:
        """
        Samples for the Linear baseline: warm-up and out-of-window samples dropped.

        Times stay relative to the first sample of the full snapshot and the
        ETA stays anchored at its last sample. Falls back to the full snapshot
        when trimming leaves fewer than three samples.
        """
        latest = samples[-1]
        trimmed = list(samples)

        if settings.ignore_first_minutes > 0:
            warm_up_ms = settings.ignore_first_minutes * 60 * 1000
            trimmed = [s for s in trimmed if s.t_ms >= warm_up_ms]

        if settings.linear_window_hours > 0:
            window_start = latest.t_ms - settings.linear_window_hours * 3600 * 1000
            trimmed = [s for s in trimmed if s.t_ms >= window_start]

        if len(trimmed) < MIN_SAMPLES_FOR_FIT:
            logger.debug(
                f"Linear window holds {len(trimmed)} samples, using all {len(samples)}"
            )
            return FitData.from_samples(samples)

        return FitData.from_samples(trimmed, origin_ms=samples[0].t_ms, anchor=latest)
