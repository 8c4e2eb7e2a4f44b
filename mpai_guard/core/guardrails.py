"""
Cost guardrails and limits enforcement.

Evaluates a cost estimate against four independent limit tiers:

1. Per-request max cost - Prevents catastrophic single-request costs
2. Per-user daily limit - Caps a single user's spend for the day
3. Total daily limit - Caps spend across all users for the day
4. Per-user monthly limit - Caps a user's spend for the billing period

Every tier is evaluated; violations are collected rather than short-circuited
so callers can report all reasons at once.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class LimitTier(Enum):
    """Limit tiers in evaluation order."""
    PER_REQUEST = "per_request"
    USER_DAILY = "user_daily"
    TOTAL_DAILY = "total_daily"
    USER_MONTHLY = "user_monthly"


@dataclass(frozen=True)
class LimitPolicy:
    """Spend ceilings applied to every request."""
    max_cost_per_request: float = 0.50
    max_cost_per_user_per_day: float = 10.00
    max_cost_total_per_day: float = 100.00
    default_monthly_limit_per_user: float = 5.00

    def __post_init__(self):
        for name in (
            "max_cost_per_request",
            "max_cost_per_user_per_day",
            "max_cost_total_per_day",
            "default_monthly_limit_per_user",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")


@dataclass(frozen=True)
class LimitViolation:
    """One breached tier."""
    tier: LimitTier
    projected: float
    limit: float
    message: str


@dataclass
class LimitCheckResult:
    """Outcome of a pre-flight limit check."""
    allowed: bool
    monthly_cost: float
    monthly_limit: float
    monthly_remaining: float
    violations: List[LimitViolation] = field(default_factory=list)

    @property
    def messages(self) -> List[str]:
        return [v.message for v in self.violations]

    @property
    def monthly_limit_exceeded(self) -> bool:
        return any(v.tier == LimitTier.USER_MONTHLY for v in self.violations)


def evaluate_limits(
    policy: LimitPolicy,
    estimated_cost: float,
    user_daily_cost: float,
    total_daily_cost: float,
    user_monthly_cost: float,
    user_monthly_limit: float,
) -> LimitCheckResult:
    """
    Evaluate all limit tiers for a request.

    Args:
        policy: Limit amounts
        estimated_cost: Estimated total cost of the request
        user_daily_cost: User's spend so far today
        total_daily_cost: Spend so far today across all users
        user_monthly_cost: User's spend so far this billing period
        user_monthly_limit: Resolved monthly limit for the user

    Returns:
        LimitCheckResult with every violated tier
    """
    violations: List[LimitViolation] = []

    # 1. Per-request max cost
    if estimated_cost > policy.max_cost_per_request:
        violations.append(LimitViolation(
            tier=LimitTier.PER_REQUEST,
            projected=estimated_cost,
            limit=policy.max_cost_per_request,
            message=(
                f"Request cost (${estimated_cost:.4f}) exceeds per-request "
                f"limit (${policy.max_cost_per_request:.4f})"
            ),
        ))

    # 2. Per-user daily limit
    projected_user_daily = user_daily_cost + estimated_cost
    if projected_user_daily > policy.max_cost_per_user_per_day:
        violations.append(LimitViolation(
            tier=LimitTier.USER_DAILY,
            projected=projected_user_daily,
            limit=policy.max_cost_per_user_per_day,
            message=(
                f"User daily cost (${projected_user_daily:.2f}) would exceed "
                f"limit (${policy.max_cost_per_user_per_day:.2f})"
            ),
        ))

    # 3. Total daily limit
    projected_total_daily = total_daily_cost + estimated_cost
    if projected_total_daily > policy.max_cost_total_per_day:
        violations.append(LimitViolation(
            tier=LimitTier.TOTAL_DAILY,
            projected=projected_total_daily,
            limit=policy.max_cost_total_per_day,
            message=(
                f"Total daily cost (${projected_total_daily:.2f}) would exceed "
                f"limit (${policy.max_cost_total_per_day:.2f})"
            ),
        ))

    # 4. Per-user monthly limit
    projected_monthly = user_monthly_cost + estimated_cost
    if projected_monthly > user_monthly_limit:
        violations.append(LimitViolation(
            tier=LimitTier.USER_MONTHLY,
            projected=projected_monthly,
            limit=user_monthly_limit,
            message=(
                f"User monthly cost (${projected_monthly:.2f}) would exceed "
                f"monthly limit (${user_monthly_limit:.2f})"
            ),
        ))

    return LimitCheckResult(
        allowed=not violations,
        monthly_cost=user_monthly_cost,
        monthly_limit=user_monthly_limit,
        monthly_remaining=max(0.0, user_monthly_limit - user_monthly_cost),
        violations=violations,
    )
