"""
Cost ledger.

Tracks spend on two horizons:

- Daily, in process: per-user and global totals for the current UTC day.
  These are not durable and reset when the wall-clock date moves past the
  last-seen date.
- Monthly, durable: per-user totals keyed by billing period, updated only
  through the store's atomic increment.

"Today" and "this period" are re-derived from the clock on every call, so a
ledger instance may safely live across a date boundary.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .billing import billing_period_key, calendar_month_key, day_key
from .guardrails import LimitCheckResult, LimitPolicy, evaluate_limits
from .pricing import CostBreakdown
from mpai_guard.storage.models import UserProfile
from mpai_guard.storage.repository import CostRepository, UserProfileRepository

logger = logging.getLogger(__name__)

HIGH_COST_THRESHOLD = 0.05

# Marks a profile argument the caller has not looked up yet; None means
# the lookup ran and found nothing.
_UNSET = object()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RecordOutcome:
    """Result of recording a cost.

    Daily accounting always succeeds; ``monthly_persisted`` is False when the
    durable increment failed (logged, not raised).
    """
    user_daily_cost: float
    total_daily_cost: float
    period_key: str
    monthly_persisted: bool
    error: Optional[str] = None

    @property
    def soft_failure(self) -> bool:
        return not self.monthly_persisted


@dataclass(frozen=True)
class DailySnapshot:
    date: str
    total_daily_cost: float
    user_daily_costs: Dict[str, float] = field(default_factory=dict)


class CostLedger:
    """Per-user daily and monthly spend tracking with limit checks.

    One instance is shared by all request handlers of a process. Daily
    aggregates are guarded by a lock so concurrent increments never lose
    updates.
    """

    def __init__(
        self,
        policy: LimitPolicy,
        cost_repository: CostRepository,
        profile_repository: Optional[UserProfileRepository] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.policy = policy
        self.cost_repository = cost_repository
        self.profile_repository = profile_repository
        self.clock = clock
        self._lock = threading.Lock()
        self._last_reset_date = day_key(clock())
        self._user_daily: Dict[str, float] = {}
        self._total_daily = 0.0

    # --- daily aggregates --------------------------------------------------

    def _reset_if_needed(self, today: str) -> None:
        # Caller holds self._lock.
        if self._last_reset_date != today:
            self._user_daily = {}
            self._total_daily = 0.0
            self._last_reset_date = today

    def user_daily_cost(self, user_id: str) -> float:
        today = day_key(self.clock())
        with self._lock:
            self._reset_if_needed(today)
            return self._user_daily.get(user_id, 0.0)

    def total_daily_cost(self) -> float:
        today = day_key(self.clock())
        with self._lock:
            self._reset_if_needed(today)
            return self._total_daily

    def daily_snapshot(self) -> DailySnapshot:
        today = day_key(self.clock())
        with self._lock:
            self._reset_if_needed(today)
            return DailySnapshot(
                date=self._last_reset_date,
                total_daily_cost=self._total_daily,
                user_daily_costs=dict(self._user_daily),
            )

    # --- monthly figures ---------------------------------------------------

    def _load_profile(self, user_id: str) -> Optional[UserProfile]:
        if self.profile_repository is None:
            return None
        try:
            return self.profile_repository.get_profile(user_id)
        except Exception as e:
            logger.warning("Could not load profile for %s, using defaults: %s", user_id, e)
            return None

    def period_key(self, user_id: str, now: Optional[datetime] = None,
                   profile: Any = _UNSET) -> str:
        """Billing-period key for a user at ``now`` (defaults to the clock)."""
        now = now or self.clock()
        if profile is _UNSET:
            profile = self._load_profile(user_id)
        anchor = profile.billing_cycle_start if profile else None
        try:
            return billing_period_key(now, anchor)
        except ValueError as e:
            logger.warning("Invalid billing cycle for %s, using calendar month: %s", user_id, e)
            return calendar_month_key(now)

    def monthly_limit(self, user_id: str, profile: Any = _UNSET) -> float:
        """Per-user override if one exists, else the global default."""
        if profile is _UNSET:
            profile = self._load_profile(user_id)
        if profile is not None and profile.monthly_limit is not None:
            return float(profile.monthly_limit)
        return self.policy.default_monthly_limit_per_user

    def monthly_cost(self, user_id: str, now: Optional[datetime] = None,
                     profile: Any = _UNSET) -> float:
        return self._read_monthly(user_id, self.period_key(user_id, now, profile))

    def _read_monthly(self, user_id: str, key: str) -> float:
        try:
            return self.cost_repository.get_monthly_cost(user_id, key)
        except Exception as e:
            logger.warning("Could not fetch monthly cost for %s: %s", user_id, e)
            return 0.0

    # --- limit check and recording ----------------------------------------

    def check_limits(self, user_id: str, estimate: CostBreakdown) -> LimitCheckResult:
        """Evaluate all four limit tiers for an estimated request cost.

        Args:
            user_id: User making the request
            estimate: Pre-flight cost estimate

        Returns:
            LimitCheckResult with every violated tier and the user's monthly
            figures
        """
        now = self.clock()
        today = day_key(now)
        with self._lock:
            self._reset_if_needed(today)
            user_daily = self._user_daily.get(user_id, 0.0)
            total_daily = self._total_daily

        profile = self._load_profile(user_id)
        result = evaluate_limits(
            policy=self.policy,
            estimated_cost=estimate.total_cost,
            user_daily_cost=user_daily,
            total_daily_cost=total_daily,
            user_monthly_cost=self.monthly_cost(user_id, now, profile),
            user_monthly_limit=self.monthly_limit(user_id, profile),
        )
        if not result.allowed:
            logger.error("Request blocked by cost limits for %s: %s", user_id, result.messages)
        return result

    def record_cost(self, user_id: str, cost: float) -> RecordOutcome:
        """Add an actual cost to the daily aggregates and the monthly ledger.

        The durable increment is best-effort: a failure is logged and
        reported through the outcome, and the daily accounting stands.

        Raises:
            ValueError: If cost is negative
        """
        if cost < 0:
            raise ValueError("cost cannot be negative")

        now = self.clock()
        today = day_key(now)
        with self._lock:
            self._reset_if_needed(today)
            user_daily = self._user_daily.get(user_id, 0.0) + cost
            self._user_daily[user_id] = user_daily
            self._total_daily += cost
            total_daily = self._total_daily

        key = self.period_key(user_id, now)
        error = None
        try:
            self.cost_repository.increment_monthly_cost(user_id, key, cost, now)
        except Exception as e:
            logger.error("Failed to increment monthly cost for %s: %s", user_id, e)
            error = str(e)

        if cost > HIGH_COST_THRESHOLD:
            logger.info(
                "High-cost request: $%.4f | User: %s | Daily: $%.2f | Monthly: $%.2f "
                "| Period: %s",
                cost, user_id, user_daily, self._read_monthly(user_id, key), key,
            )

        return RecordOutcome(
            user_daily_cost=user_daily,
            total_daily_cost=total_daily,
            period_key=key,
            monthly_persisted=error is None,
            error=error,
        )
