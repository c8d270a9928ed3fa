"""
Item response functions for the Rasch, 2PL and 3PL models.

All three models share one response function:

    P(theta) = c + (1 - c) / (1 + exp(-a * (theta - b)))

Where:
    a = discrimination, b = difficulty, c = guessing floor

The Rasch model fixes a = 1 and c = 0; the 2PL model fixes c = 0. Each model is
a pure function of ``(theta, params)`` returning the probability of a correct
response and its derivative with respect to theta, selected by ``IRTModel``
through a dispatch table. Fisher information is derived from those two values:

    I(theta) = P'(theta)^2 / (P(theta) * (1 - P(theta)))

which reduces to a^2 * P * (1 - P) for the 2PL model.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from libs.domain_types import IRTModel

# Probabilities are kept this far away from 0 and 1 before dividing by P(1-P)
PROBABILITY_EPSILON = 1e-10

RASCH_DISCRIMINATION = 1.0


@dataclass(frozen=True)
class IRTParameters:
    """Calibrated IRT constants for a single item.

    Attributes:
        discrimination: Slope (a). Must be > 0 for items used in a session.
        difficulty: Location (b) on the theta scale.
        guessing: Lower asymptote (c) in [0, 1). Ignored by Rasch and 2PL.
    """

    discrimination: float
    difficulty: float
    guessing: float = 0.0

    def __post_init__(self) -> None:
        if not math.isfinite(self.discrimination) or not math.isfinite(
            self.difficulty
        ):
            raise ValueError(
                "IRT discrimination and difficulty must be finite, got "
                f"a={self.discrimination}, b={self.difficulty}"
            )
        if not 0.0 <= self.guessing < 1.0:
            raise ValueError(
                f"Guessing parameter must be in [0, 1), got {self.guessing}"
            )


ResponseFunction = Callable[[float, IRTParameters], Tuple[float, float]]


def _sigmoid(logit: float) -> float:
    """Numerically stable logistic function."""
    if logit >= 0:
        return 1.0 / (1.0 + math.exp(-logit))
    exp_logit = math.exp(logit)
    return exp_logit / (1.0 + exp_logit)


def _logistic_response(
    theta: float, discrimination: float, difficulty: float, guessing: float
) -> Tuple[float, float]:
    s = _sigmoid(discrimination * (theta - difficulty))
    prob = guessing + (1.0 - guessing) * s
    derivative = (1.0 - guessing) * discrimination * s * (1.0 - s)
    return prob, derivative


def _rasch_response(theta: float, params: IRTParameters) -> Tuple[float, float]:
    return _logistic_response(theta, RASCH_DISCRIMINATION, params.difficulty, 0.0)


def _two_pl_response(theta: float, params: IRTParameters) -> Tuple[float, float]:
    return _logistic_response(theta, params.discrimination, params.difficulty, 0.0)


def _three_pl_response(theta: float, params: IRTParameters) -> Tuple[float, float]:
    return _logistic_response(
        theta, params.discrimination, params.difficulty, params.guessing
    )


RESPONSE_FUNCTIONS: Dict[IRTModel, ResponseFunction] = {
    IRTModel.RASCH: _rasch_response,
    IRTModel.TWO_PL: _two_pl_response,
    IRTModel.THREE_PL: _three_pl_response,
}


def response_function(model: IRTModel) -> ResponseFunction:
    """Return the ``(theta, params) -> (P, dP/dtheta)`` function for a model."""
    return RESPONSE_FUNCTIONS[IRTModel(model)]


def probability_correct(
    theta: float,
    params: IRTParameters,
    model: IRTModel = IRTModel.TWO_PL,
) -> float:
    """Probability of a correct response at ability ``theta``."""
    prob, _ = response_function(model)(theta, params)
    return prob


def fisher_information(
    theta: float,
    params: IRTParameters,
    model: IRTModel = IRTModel.TWO_PL,
) -> float:
    """
    Compute Fisher information for an item at a given ability level.

    Args:
        theta: Ability level.
        params: Item IRT parameters.
        model: Which IRT model to evaluate.

    Returns:
        Fisher information value (non-negative). Zero when the response
        probability saturates at 0 or 1.

    Raises:
        ValueError: If the model uses discrimination and it is not positive.
    """
    model = IRTModel(model)
    if model is not IRTModel.RASCH and params.discrimination <= 0:
        raise ValueError(
            f"Discrimination parameter must be positive, got {params.discrimination}"
        )

    prob, derivative = response_function(model)(theta, params)
    variance = prob * (1.0 - prob)
    if variance < PROBABILITY_EPSILON:
        return 0.0
    return (derivative**2) / variance


def log_likelihood_score(
    theta: float,
    params: IRTParameters,
    is_correct: bool,
    model: IRTModel = IRTModel.TWO_PL,
) -> float:
    """
    First derivative of the log-likelihood of one response with respect to theta.

        d/dtheta log L = (u - P) * P' / (P * (1 - P))

    Where u is 1 for a correct response and 0 otherwise.
    """
    prob, derivative = response_function(model)(theta, params)
    prob = min(max(prob, PROBABILITY_EPSILON), 1.0 - PROBABILITY_EPSILON)
    observed = 1.0 if is_correct else 0.0
    return (observed - prob) * derivative / (prob * (1.0 - prob))
