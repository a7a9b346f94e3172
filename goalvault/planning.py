"""
planning.py - Goal Dates and Yield Projections

Helpers for choosing a goal date and estimating what a deposit will be worth
when it gets there. Goal horizons are counted in 30-day months.

Projections assume simple (non-compounding) linear accrual at the vault's
annual rate, i.e. a pool with no other activity. The real vault folds accrued
yield into its total on every deposit and redemption, so realised values can
be slightly higher. Projections are estimates for display; the vault's
conversion functions are the source of truth.

Provides:
- goal_date_from_months(): goal date for a horizon
- project_values(): vectorised projected value over a grid of elapsed times
- project_goal_outcomes(): projected value, yield and early-exit penalty per horizon
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Sequence, Union

import numpy as np

from .core import (
    BPS_DENOMINATOR, EARLY_WITHDRAWAL_PENALTY_DIVISOR, SECONDS_PER_YEAR,
    require_amount,
)


# Type alias for scalar or array inputs
Numeric = Union[int, float, np.ndarray]

# Horizons offered when opening a goal deposit
GOAL_HORIZON_MONTHS = (6, 12, 24, 36)
DAYS_PER_GOAL_MONTH = 30
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class GoalProjection:
    """Estimated outcome of holding a deposit to one goal horizon."""
    months: int
    goal_date: datetime
    projected_value: int
    projected_yield: int
    early_penalty: int  # forfeited by withdrawing one day before goal_date


def goal_date_from_months(start: datetime, months: int) -> datetime:
    """
    Goal date `months` 30-day months after start.

    Raises:
        ValueError: If months is not positive
    """
    if months <= 0:
        raise ValueError(f"months must be positive, got {months}")
    return start + timedelta(days=months * DAYS_PER_GOAL_MONTH)


def project_values(
    principal: int,
    annual_yield_rate_bps: int,
    elapsed_seconds: Numeric,
) -> np.ndarray:
    """
    Projected value of principal after each elapsed time (vectorised).

    value = principal + floor(principal * bps * t / (SECONDS_PER_YEAR * 10000))

    Args:
        principal: Assets deposited, in smallest units
        annual_yield_rate_bps: Vault's annual rate in basis points
        elapsed_seconds: Scalar or array of elapsed seconds (non-negative)

    Returns:
        Array of projected values (float64, whole units)

    Raises:
        ValueError: If any elapsed time is negative or not finite, or the rate is negative
    """
    if annual_yield_rate_bps < 0:
        raise ValueError("annual_yield_rate_bps must be non-negative")
    t = np.asarray(elapsed_seconds, dtype=np.float64)
    if not np.all(np.isfinite(t)) or np.any(t < 0):
        raise ValueError("elapsed_seconds must be non-negative and finite")
    # Divide last so whole-number results stay exact in float64
    accrued = np.floor(
        float(principal) * annual_yield_rate_bps * t / (SECONDS_PER_YEAR * BPS_DENOMINATOR)
    )
    return float(principal) + accrued


def project_goal_outcomes(
    principal: int,
    annual_yield_rate_bps: int,
    start: datetime,
    horizons: Sequence[int] = GOAL_HORIZON_MONTHS,
) -> List[GoalProjection]:
    """
    Estimate value, yield and early-exit penalty for each goal horizon.

    Example:
        for p in project_goal_outcomes(to_units(7400), 500, datetime(2025, 1, 1)):
            print(p.months, from_units(p.projected_yield))
    """
    require_amount(principal, "principal")
    goal_dates = [goal_date_from_months(start, m) for m in horizons]
    seconds = np.array(
        [(d - start).total_seconds() for d in goal_dates], dtype=np.float64
    )
    at_goal = project_values(principal, annual_yield_rate_bps, seconds)
    day_before = project_values(
        principal, annual_yield_rate_bps, np.maximum(seconds - SECONDS_PER_DAY, 0.0)
    )

    projections = []
    for months, goal_date, value, early_value in zip(horizons, goal_dates, at_goal, day_before):
        value = int(value)
        early_yield = max(int(early_value) - principal, 0)
        projections.append(GoalProjection(
            months=months,
            goal_date=goal_date,
            projected_value=value,
            projected_yield=value - principal,
            early_penalty=early_yield // EARLY_WITHDRAWAL_PENALTY_DIVISOR,
        ))
    return projections
