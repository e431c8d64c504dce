# File: utils/math_utils.py
"""Math and calculation utilities for taskcycle.

Pure Python math functions, unit tested without any fixtures.

Functions:
    - round_points: Consistent rounding to configured precision
    - round_half_away: Integer rounding that treats .5 symmetrically
    - apply_multiplier: Integer point multiplier arithmetic
    - calculate_percentage: Progress percentage calculations
    - safe_ratio: Division with a fallback for empty denominators
    - clamp: Bound a value to a range
"""

from __future__ import annotations

import math

# ==============================================================================
# Constants (local copies to avoid circular imports)
# ==============================================================================

# Default float precision for ratio rounding
DATA_FLOAT_PRECISION = 2


# ==============================================================================
# Point Arithmetic Functions
# ==============================================================================


def round_points(value: float, precision: int = DATA_FLOAT_PRECISION) -> float:
    """Round a value to the configured precision.

    Examples:
        round_points(10.456) → 10.46
        round_points(10.0) → 10.0
    """
    return round(value, precision)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, with .5 moving away from zero.

    Python's round() uses banker's rounding (2.5 → 2), which would make
    identical multipliers score differently depending on parity.

    Examples:
        round_half_away(2.5) → 3
        round_half_away(-2.5) → -3
        round_half_away(7.4) → 7
    """
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def apply_multiplier(base: int, multiplier: float) -> int:
    """Apply a multiplier to an integer point value.

    Args:
        base: Base point value
        multiplier: Multiplier to apply (e.g., 1.5 for 50% bonus)

    Returns:
        Integer result rounded half away from zero

    Examples:
        apply_multiplier(10, 1.5) → 15
        apply_multiplier(5, 0.5) → 3
        apply_multiplier(10, 1.0) → 10
    """
    return round_half_away(base * multiplier)


def calculate_percentage(
    current: float,
    target: float,
    precision: int = DATA_FLOAT_PRECISION,
) -> float:
    """Calculate progress percentage with proper rounding.

    Returns:
        Percentage (0-100) with proper rounding, or 0.0 if target is 0

    Examples:
        calculate_percentage(1, 3) → 33.33
        calculate_percentage(5, 0) → 0.0  # Division by zero protection
    """
    if target <= 0:
        return 0.0
    return round_points((current / target) * 100, precision)


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning `default` when the denominator is not positive.

    Examples:
        safe_ratio(1, 4) → 0.25
        safe_ratio(5, 0, default=1.0) → 1.0
    """
    if denominator <= 0:
        return default
    return numerator / denominator


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a value between minimum and maximum bounds.

    Examples:
        clamp(150, 0, 100) → 100
        clamp(-10, 0, 100) → 0
        clamp(50, 0, 100) → 50
    """
    return max(min_val, min(value, max_val))
