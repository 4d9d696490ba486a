"""
Bounded nonlinear least squares for the curve models.

Wraps ``scipy.optimize.least_squares`` (trust region reflective) with the
conventions the models rely on: the model supplies its values and analytic
Jacobian, box bounds keep parameters in their domain, and an optional
projector clamps parameters that box bounds cannot express (it is applied to
every evaluated point and to the returned optimum, never discarding the
optimization).

Exhausting the evaluation budget, producing non-finite values or Jacobian
entries, or a solver failure raises ``ConvergenceError``.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import least_squares

logger = logging.getLogger("queue_estimator.optimize")

ModelFunction = Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray]]
Projector = Callable[[np.ndarray], np.ndarray]
Bounds = Tuple[Sequence[float], Sequence[float]]


class FitError(ValueError):
    """A model could not be fitted to the data."""


class DegenerateFitError(FitError):
    """The normal equations are singular (near-zero determinant)."""


class ConvergenceError(FitError):
    """The nonlinear optimizer failed, diverged or ran out of budget."""


@dataclass
class OptimizeResult:
    """Outcome of a successful optimization."""
    params: np.ndarray
    cost: float            # Sum of squared residuals at params
    evaluations: int
    status: int            # least_squares termination status (1-4)
    message: str


def fit_least_squares(
    model: ModelFunction,
    x0,
    target,
    bounds: Optional[Bounds] = None,
    projector: Optional[Projector] = None,
    max_evaluations: int = 3000,
    cost_tolerance: float = 1e-8,
    param_tolerance: float = 1e-8,
) -> OptimizeResult:
    """
    Fit ``model`` to ``target`` starting from ``x0``.

    Args:
        model: Returns (values, jacobian) for a parameter vector
        x0: Initial parameter guess, clipped into ``bounds``
        target: Observed values
        bounds: (lower, upper) parameter bounds, unbounded if None
        projector: Clamps a parameter vector into the valid domain
        max_evaluations: Budget of residual evaluations
        cost_tolerance: Relative cost change tolerance (``ftol``)
        param_tolerance: Relative parameter change tolerance (``xtol``)

    Returns:
        OptimizeResult at the converged point

    Raises:
        ConvergenceError: On budget exhaustion or numerical failure
    """
    project = projector or (lambda p: p)
    target = np.asarray(target, dtype=np.float64)
    n = target.shape[0]

    start = _checked(project(np.asarray(x0, dtype=np.float64)))
    if bounds is None:
        lower = np.full(start.shape, -np.inf)
        upper = np.full(start.shape, np.inf)
    else:
        lower = np.asarray(bounds[0], dtype=np.float64)
        upper = np.asarray(bounds[1], dtype=np.float64)
    start = np.clip(start, lower, upper)

    def residuals(params):
        values, _ = _evaluate(model, _checked(project(params)), n)
        return values - target

    def jacobian(params):
        _, jac = _evaluate(model, _checked(project(params)), n)
        return jac

    try:
        result = least_squares(
            residuals,
            start,
            jac=jacobian,
            bounds=(lower, upper),
            method="trf",
            ftol=cost_tolerance,
            xtol=param_tolerance,
            max_nfev=max_evaluations,
        )
    except ConvergenceError:
        raise
    except (ValueError, np.linalg.LinAlgError) as e:
        raise ConvergenceError(f"Least squares solver failed: {e}") from e

    if result.status <= 0:
        raise ConvergenceError(f"No convergence after {result.nfev} evaluations: {result.message}")

    params = _checked(project(result.x))
    logger.debug(f"Converged after {result.nfev} evaluations (status {result.status})")
    return OptimizeResult(
        params=params,
        cost=2.0 * float(result.cost),
        evaluations=int(result.nfev),
        status=int(result.status),
        message=str(result.message),
    )


def _checked(params) -> np.ndarray:
    params = np.asarray(params, dtype=np.float64)
    if not np.all(np.isfinite(params)):
        raise ConvergenceError(f"Non-finite parameters: {params}")
    return params


def _evaluate(model: ModelFunction, params: np.ndarray, n: int) -> Tuple[np.ndarray, np.ndarray]:
    values, jacobian = model(params)
    values = np.asarray(values, dtype=np.float64)
    jacobian = np.asarray(jacobian, dtype=np.float64)

    if values.shape != (n,) or jacobian.shape != (n, params.shape[0]):
        raise ConvergenceError(
            f"Model returned shapes {values.shape}, {jacobian.shape} for {n} points"
        )
    if not np.all(np.isfinite(values)):
        raise ConvergenceError("Non-finite model values")
    if not np.all(np.isfinite(jacobian)):
        raise ConvergenceError("Non-finite Jacobian entries")
    return values, jacobian
