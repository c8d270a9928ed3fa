"""
Score conversion for Computerized Adaptive Testing.

Converts final theta (ability) estimates into percentile ranks against an
assumed normal population distribution.

Percentile Rank:
    z = (theta - population_mean) / population_sd
    percentile = Φ(z) × 100

    Where Φ is the standard normal CDF (scipy's closed-form implementation,
    accurate to well below 1e-6). The result is rounded and clamped to [1, 99]:
    a percentile of 0 or 100 would imply certainty the estimate cannot carry.

Confidence:
    confidence = clamp(1 - SE(theta), 0, 1)

    A coarse, display-oriented reading of the standard error.
"""

import logging
import math

from scipy.stats import norm

logger = logging.getLogger(__name__)

PERCENTILE_FLOOR = 1
PERCENTILE_CEILING = 99


def normal_cdf(z: float) -> float:
    """Standard normal cumulative distribution function."""
    return float(norm.cdf(z))


def theta_to_percentile(
    theta: float,
    population_mean: float = 0.0,
    population_sd: float = 1.0,
) -> int:
    """
    Convert a theta estimate to an integer percentile rank in [1, 99].

    Args:
        theta: Ability estimate.
        population_mean: Mean of the population theta distribution.
        population_sd: SD of the population theta distribution. Must be > 0.

    Returns:
        Percentile rank, clamped to [1, 99].

    Raises:
        ValueError: If theta is not finite or population_sd is not positive.

    Examples:
        >>> theta_to_percentile(0.0)
        50
        >>> theta_to_percentile(1.0)
        84
        >>> theta_to_percentile(4.0)
        99
    """
    if math.isnan(theta) or math.isinf(theta):
        raise ValueError(f"theta must be finite, got {theta}")
    if population_sd <= 0:
        raise ValueError(f"population_sd must be positive, got {population_sd}")

    z_score = (theta - population_mean) / population_sd
    raw_percentile = normal_cdf(z_score) * 100
    percentile = int(
        max(PERCENTILE_FLOOR, min(PERCENTILE_CEILING, round(raw_percentile)))
    )

    logger.debug(
        f"theta_to_percentile: theta={theta:.3f}, z={z_score:.3f} -> "
        f"raw={raw_percentile:.2f}, percentile={percentile}"
    )
    return percentile


def standard_error_to_confidence(standard_error: float) -> float:
    """Map a standard error onto a 0-1 confidence value."""
    if standard_error < 0:
        raise ValueError(f"standard_error must be non-negative, got {standard_error}")
    return round(max(0.0, min(1.0, 1.0 - standard_error)), 4)
