"""
Maximum Likelihood ability estimation for Computerized Adaptive Testing.

Estimates ability (theta) from a response history by Fisher scoring: Newton
steps on the log-likelihood where the second derivative is replaced by the
(negative) test information.

    theta_{k+1} = theta_k + sum_i score_i(theta_k) / sum_i I_i(theta_k)

Each step is capped at MAX_NEWTON_STEP logits, theta is bounded to a configured
range, and the number of iterations is bounded, so the estimator always returns.

Standard error is the inverse square root of the test information at the final
estimate:

    SE(theta) = 1 / sqrt(sum_i I_i(theta))

The reported SE is never larger than the SE passed in as the prior, which makes
SE non-increasing over the course of a session.

Response patterns that are all correct or all incorrect have no finite MLE.
Those are handled without raising, using the configured NonMixedStrategy, and
reported on the result (``mixed_pattern=False``, ``bound_hit`` when theta lands
on a bound of the range).
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from assessment.core.cat.irt_models import (
    IRTParameters,
    fisher_information,
    log_likelihood_score,
)
from libs.domain_types import IRTModel, NonMixedStrategy

logger = logging.getLogger(__name__)

THETA_RANGE = (-4.0, 4.0)
MAX_ITERATIONS = 50
CONVERGENCE_TOLERANCE = 1e-4
# Largest single Newton move, in logits. Keeps 3PL iterations from overshooting.
MAX_NEWTON_STEP = 1.0
NON_MIXED_STEP = 1.0

# Bounds applied to priors derived from earlier sessions
PRIOR_THETA_LIMIT = 3.0
PRIOR_SD_RANGE = (0.1, 1.0)
# Starting SE for priors derived from historical percentage scores
PERCENTAGE_PRIOR_SE = 0.8
PERCENTAGE_FLOOR = 0.01
LOGISTIC_SCALING = 1.7

ResponseHistory = Sequence[Tuple[IRTParameters, bool]]


@dataclass(frozen=True)
class AbilityEstimate:
    """Result of one ability estimation.

    Attributes:
        theta: Ability estimate, always inside the configured range.
        standard_error: Standard error of the estimate (never above the prior SE).
        bound_hit: True when theta ended on a bound of the range.
        mixed_pattern: False when the history is all correct or all incorrect,
            i.e. the likelihood has no finite maximum.
        converged: True when Newton iterations met the tolerance.
        iterations: Number of Newton iterations run (0 for non-mixed patterns).
    """

    theta: float
    standard_error: float
    bound_hit: bool = False
    mixed_pattern: bool = True
    converged: bool = True
    iterations: int = 0


def estimate_ability_mle(
    history: ResponseHistory,
    prior_theta: float = 0.0,
    prior_se: float = 1.0,
    model: IRTModel = IRTModel.TWO_PL,
    theta_range: Tuple[float, float] = THETA_RANGE,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
    non_mixed_strategy: NonMixedStrategy = NonMixedStrategy.STEP,
    non_mixed_step: float = NON_MIXED_STEP,
) -> AbilityEstimate:
    """
    Estimate ability by bounded Maximum Likelihood.

    Args:
        history: Sequence of (item parameters, is_correct) pairs.
        prior_theta: Estimate before this history was scored. Newton
            iterations start here, and it is returned unchanged when the
            history is empty.
        prior_se: Standard error before this history was scored. Returned
            unchanged for an empty history, and caps the returned SE otherwise.
        model: IRT model used for the response function.
        theta_range: (min, max) bounds for theta.
        max_iterations: Maximum Newton iterations.
        tolerance: Convergence tolerance on the theta step.
        non_mixed_strategy: How to place theta for all-correct or
            all-incorrect histories.
        non_mixed_step: Distance in logits past the hardest (all correct) or
            easiest (all incorrect) item used by NonMixedStrategy.STEP.

    Returns:
        AbilityEstimate with theta, SE and diagnostic flags.

    Raises:
        ValueError: If the theta range is empty, prior_se is not positive, or
            an item has a non-positive discrimination under 2PL/3PL.
    """
    theta_min, theta_max = theta_range
    if theta_min >= theta_max:
        raise ValueError(f"theta_range must be increasing, got {theta_range}")
    if prior_se <= 0:
        raise ValueError(f"prior_se must be positive, got {prior_se}")

    # Edge case: no responses, return the prior
    if not history:
        return AbilityEstimate(theta=prior_theta, standard_error=prior_se)

    model = IRTModel(model)
    if model is not IRTModel.RASCH:
        for i, (params, _) in enumerate(history):
            if params.discrimination <= 0:
                raise ValueError(
                    f"Discrimination parameter must be positive, got "
                    f"{params.discrimination} for response {i}"
                )

    start = _clamp(prior_theta, theta_min, theta_max)
    correct_count = sum(1 for _, is_correct in history if is_correct)

    if correct_count in (0, len(history)):
        theta = _non_mixed_theta(
            history=history,
            all_correct=correct_count == len(history),
            start=start,
            theta_range=theta_range,
            strategy=NonMixedStrategy(non_mixed_strategy),
            step=non_mixed_step,
        )
        return AbilityEstimate(
            theta=theta,
            standard_error=_standard_error(theta, history, model, prior_se),
            bound_hit=_on_bound(theta, theta_min, theta_max),
            mixed_pattern=False,
            converged=False,
            iterations=0,
        )

    theta, converged, iterations = _newton_raphson(
        history=history,
        start=start,
        model=model,
        theta_range=theta_range,
        max_iterations=max_iterations,
        tolerance=tolerance,
    )

    if not converged:
        logger.warning(
            f"MLE did not converge after {iterations} iterations "
            f"(theta={theta:.3f}, responses={len(history)})"
        )

    return AbilityEstimate(
        theta=theta,
        standard_error=_standard_error(theta, history, model, prior_se),
        bound_hit=_on_bound(theta, theta_min, theta_max),
        mixed_pattern=True,
        converged=converged,
        iterations=iterations,
    )


def _newton_raphson(
    history: ResponseHistory,
    start: float,
    model: IRTModel,
    theta_range: Tuple[float, float],
    max_iterations: int,
    tolerance: float,
) -> Tuple[float, bool, int]:
    """Run capped Fisher-scoring iterations; returns (theta, converged, iterations)."""
    theta_min, theta_max = theta_range
    theta = start

    for iteration in range(1, max_iterations + 1):
        score = 0.0
        information = 0.0
        for params, is_correct in history:
            score += log_likelihood_score(theta, params, is_correct, model)
            information += fisher_information(theta, params, model)

        if information <= 0.0:
            # Flat likelihood: push toward the side the score points at
            step = MAX_NEWTON_STEP if score > 0 else -MAX_NEWTON_STEP
        else:
            step = score / information
        step = _clamp(step, -MAX_NEWTON_STEP, MAX_NEWTON_STEP)

        updated = _clamp(theta + step, theta_min, theta_max)
        if abs(updated - theta) < tolerance:
            return updated, True, iteration
        theta = updated

    return theta, False, max_iterations


def _non_mixed_theta(
    history: ResponseHistory,
    all_correct: bool,
    start: float,
    theta_range: Tuple[float, float],
    strategy: NonMixedStrategy,
    step: float,
) -> float:
    """Place theta for a history with no finite MLE."""
    theta_min, theta_max = theta_range

    if strategy is NonMixedStrategy.FENCE:
        theta = theta_max if all_correct else theta_min
    elif all_correct:
        hardest = max(params.difficulty for params, _ in history)
        theta = max(start, hardest + step)
    else:
        easiest = min(params.difficulty for params, _ in history)
        theta = min(start, easiest - step)

    theta = _clamp(theta, theta_min, theta_max)
    logger.debug(
        f"Non-mixed response pattern ({'all correct' if all_correct else 'all incorrect'}, "
        f"n={len(history)}): theta placed at {theta:.3f} using {strategy.value}"
    )
    return theta


def _standard_error(
    theta: float,
    history: ResponseHistory,
    model: IRTModel,
    prior_se: float,
) -> float:
    total_information = sum(
        fisher_information(theta, params, model) for params, _ in history
    )
    if total_information <= 0.0:
        return prior_se
    return min(1.0 / math.sqrt(total_information), prior_se)


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def _on_bound(theta: float, theta_min: float, theta_max: float) -> bool:
    return math.isclose(theta, theta_min) or math.isclose(theta, theta_max)


def compute_prior_theta(
    previous_thetas: List[float],
    previous_ses: List[float],
    default: Optional[Tuple[float, float]] = None,
) -> Tuple[float, float]:
    """
    Compute a starting ability estimate from a learner's previous sessions.

    Uses precision-weighted averaging of previous theta estimates, where
    precision = 1/SE². Sessions with lower SE (more items, better estimates)
    carry more weight.

    Args:
        previous_thetas: Final theta estimates from past sessions.
        previous_ses: Corresponding SE values; same length as previous_thetas.
        default: (theta, se) returned when no usable session is supplied.
            Defaults to the population prior (0.0, 1.0).

    Returns:
        Tuple of (prior_theta, prior_se), clamped to theta in [-3, 3] and SE in
        [0.1, 1.0].

    Raises:
        ValueError: If the two lists differ in length.
    """
    fallback = default if default is not None else (0.0, 1.0)
    if not previous_thetas or not previous_ses:
        return fallback

    if len(previous_thetas) != len(previous_ses):
        raise ValueError(
            f"previous_thetas length ({len(previous_thetas)}) must match "
            f"previous_ses length ({len(previous_ses)})"
        )

    total_precision = 0.0
    weighted_sum = 0.0
    for theta, se in zip(previous_thetas, previous_ses):
        if se <= 0:
            logger.warning(f"Skipping session with non-positive SE: {se}")
            continue
        precision = 1.0 / (se**2)
        total_precision += precision
        weighted_sum += theta * precision

    if total_precision == 0:
        return fallback

    prior_theta = weighted_sum / total_precision
    prior_se = 1.0 / math.sqrt(total_precision)

    prior_theta = _clamp(prior_theta, -PRIOR_THETA_LIMIT, PRIOR_THETA_LIMIT)
    prior_se = _clamp(prior_se, *PRIOR_SD_RANGE)

    return (prior_theta, prior_se)


def percentage_to_theta(percentage: float) -> float:
    """
    Map a historical percentage score (0-1) onto the theta scale.

    Uses the logit of the percentage divided by the normal-ogive scaling
    constant D = 1.7, so a 50% score maps to 0. Scores at or beyond 1%/99%
    map to the prior limits of -3/+3.
    """
    if math.isnan(percentage):
        raise ValueError("percentage must be a number, got NaN")
    if percentage <= PERCENTAGE_FLOOR:
        return -PRIOR_THETA_LIMIT
    if percentage >= 1.0 - PERCENTAGE_FLOOR:
        return PRIOR_THETA_LIMIT
    theta = math.log(percentage / (1.0 - percentage)) / LOGISTIC_SCALING
    return _clamp(theta, -PRIOR_THETA_LIMIT, PRIOR_THETA_LIMIT)
