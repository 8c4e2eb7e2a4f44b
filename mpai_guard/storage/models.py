"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class SessionExchange:
    """One persisted (user query, assistant response) pair.

    Exchanges are append-only; a session is removed wholesale, never edited.
    """
    user_id: str
    session_id: str
    analysis_id: str
    user_query: Optional[str]
    response: Optional[str]
    timestamp: datetime
    expires_at: int  # Unix epoch seconds
    method: Optional[str] = None
    output_style: Optional[str] = None
    role_context: Optional[str] = None
    bandwidth: Optional[str] = None
    preview: Optional[str] = None
    perspectives: Optional[str] = None
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    user_email: Optional[str] = None


@dataclass(frozen=True)
class MonthlyCostEntry:
    """Cumulative spend for one user in one billing period."""
    user_id: str
    period_key: str
    cost: float
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class UserProfile:
    """Per-user overrides for cost governance."""
    user_id: str
    monthly_limit: Optional[float] = None
    billing_cycle_start: Optional[date] = None
