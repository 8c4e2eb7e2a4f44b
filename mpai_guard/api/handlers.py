"""
Request handlers for the analyze and history surfaces.

Handlers take a decoded JSON body (and headers) and return an ApiResponse
with a status code and JSON-ready payload, so they can be mounted on any
HTTP framework. This is the only place errors become status codes.
"""

import base64
import binascii
import json
import logging
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from mpai_guard.config.loader import AppConfig
from mpai_guard.core.classification import (
    parse_method,
    parse_optional,
    parse_output_style,
    parse_role_context,
)
from mpai_guard.core.context import ContextWindow
from mpai_guard.core.errors import CostLimitExceeded, DownstreamModelFailure, ValidationError
from mpai_guard.core.ledger import CostLedger
from mpai_guard.core.notifications import (
    ErrorNotifier,
    ErrorReport,
    LoggingErrorNotifier,
    notify_best_effort,
)
from mpai_guard.core.orchestrator import (
    DEFAULT_USER_ID,
    AnalysisModel,
    AnalysisOrchestrator,
    AnalysisQuery,
)
from mpai_guard.storage.models import SessionExchange
from mpai_guard.storage.repository import (
    CostRepository,
    SessionRepository,
    UserProfileRepository,
)

logger = logging.getLogger(__name__)

TECHNICAL_DIFFICULTIES = (
    "We are experiencing technical difficulties. "
    "Our team has been notified and is looking into it."
)
MODEL_FAILURE = "The analysis could not be completed. Please try again."
HISTORY_PAGE_SIZE = 50

_EMAIL_CLAIMS = ("email", "cognito:username", "cognito:email")


@dataclass
class ApiResponse:
    status_code: int
    body: Any = field(default_factory=dict)


def extract_email_from_auth_header(authorization: Optional[str]) -> Optional[str]:
    """Read an email claim from a bearer JWT without verifying it.

    Any parse failure yields ``None``.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None
    try:
        token = authorization.split(" ", 1)[1]
        payload_part = token.split(".")[1]
        padded = payload_part + "=" * (-len(payload_part) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))
    except (IndexError, ValueError, binascii.Error, UnicodeDecodeError) as e:
        logger.warning("Failed to parse token: %s", e)
        return None
    if not isinstance(payload, dict):
        return None
    for claim in _EMAIL_CLAIMS:
        if payload.get(claim):
            return payload[claim]
    return None


def exchange_to_dict(exchange: SessionExchange) -> Dict[str, Any]:
    item = {
        "userId": exchange.user_id,
        "sessionId": exchange.session_id,
        "analysisId": exchange.analysis_id,
        "user_query": exchange.user_query,
        "response": exchange.response,
        "method": exchange.method,
        "outputStyle": exchange.output_style,
        "roleContext": exchange.role_context,
        "bandwidth": exchange.bandwidth,
        "preview": exchange.preview,
        "perspectives": exchange.perspectives,
        "timestamp": exchange.timestamp.isoformat(),
        "ttl": exchange.expires_at,
    }
    if exchange.user_email:
        item["user_email"] = exchange.user_email
    return item


def _header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def _cost_limit_payload(error: CostLimitExceeded) -> Dict[str, Any]:
    check = error.check
    if error.monthly_limit_exceeded:
        return {
            "success": False,
            "error": (
                f"Monthly usage limit reached. You've used ${check.monthly_cost:.2f} "
                f"of your ${check.monthly_limit:.2f} monthly limit."
            ),
            "costLimitExceeded": True,
            "monthlyLimitExceeded": True,
            "monthlyCost": check.monthly_cost,
            "monthlyLimit": check.monthly_limit,
            "monthlyRemaining": check.monthly_remaining,
        }
    return {
        "success": False,
        "error": "Usage limit reached: " + "; ".join(check.messages),
        "costLimitExceeded": True,
        "violations": [v.tier.value for v in check.violations],
    }


class AnalysisService:
    """Handlers bound to one orchestrator and its stores."""

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        session_repository: SessionRepository,
        notifier: Optional[ErrorNotifier] = None,
    ):
        self.orchestrator = orchestrator
        self.session_repository = session_repository
        self.notifier = notifier

    def handle_analyze(self, body: Mapping[str, Any],
                       headers: Optional[Mapping[str, str]] = None) -> ApiResponse:
        """POST analyze.

        Returns:
            200 with the analysis, 400 on a bad request, 429 on cost
            rejection, 500 on model or unexpected failure
        """
        body = body or {}
        user_query = body.get("userQuery")
        if not isinstance(user_query, str) or not user_query.strip():
            return ApiResponse(400, {"success": False, "error": "User query is required"})
        for name in ("sessionId", "userId"):
            if body.get(name) is not None and not isinstance(body[name], str):
                return ApiResponse(400, {"success": False, "error": f"{name} must be a string"})

        user_id = body.get("userId") or DEFAULT_USER_ID
        user_email = extract_email_from_auth_header(_header(headers, "authorization"))
        if not user_email:
            logger.info("No email found in token for user %s", user_id)

        try:
            query = AnalysisQuery(
                text=user_query,
                user_id=user_id,
                session_id=body.get("sessionId") or None,
                method=parse_optional(parse_method, body.get("method")),
                output_style=parse_optional(parse_output_style, body.get("outputStyle")),
                role_context=parse_optional(parse_role_context, body.get("roleContext")),
                user_email=user_email,
            )
            result = self.orchestrator.analyze(query)
        except ValidationError as e:
            return ApiResponse(e.status_code, {"success": False, "error": str(e)})
        except CostLimitExceeded as e:
            return ApiResponse(e.status_code, _cost_limit_payload(e))
        except DownstreamModelFailure as e:
            if e.token_limit_exceeded:
                return ApiResponse(e.status_code, {
                    "success": False,
                    "error": str(e),
                    "tokenLimitExceeded": True,
                })
            return ApiResponse(e.status_code, {"success": False, "error": MODEL_FAILURE})
        except Exception as e:
            logger.exception("Error analyzing query for user %s", user_id)
            notify_best_effort(self.notifier, ErrorReport(
                type="API_ERROR",
                message=str(e) or "Failed to analyze query",
                context={
                    "userId": user_id,
                    "sessionId": body.get("sessionId"),
                    "method": body.get("method"),
                    "userQuery": user_query[:200],
                },
                stack=traceback.format_exc(),
            ))
            return ApiResponse(500, {"success": False, "error": TECHNICAL_DIFFICULTIES})

        return ApiResponse(200, result.to_dict())

    def handle_history(self, user_id: str, limit: int = HISTORY_PAGE_SIZE) -> ApiResponse:
        """Most recent exchanges across a user's sessions."""
        try:
            items = self.session_repository.list_user_history(user_id, limit)
        except Exception:
            logger.exception("Error fetching history for %s", user_id)
            return ApiResponse(500, {"error": "Failed to fetch history"})
        return ApiResponse(200, [exchange_to_dict(ex) for ex in items])

    def handle_session(self, user_id: str, session_id: str,
                       limit: Optional[int] = None) -> ApiResponse:
        try:
            items = self.session_repository.query_session(user_id, session_id, limit)
        except Exception:
            logger.exception("Error fetching session %s for %s", session_id, user_id)
            return ApiResponse(500, {"error": "Failed to fetch session"})
        return ApiResponse(200, [exchange_to_dict(ex) for ex in items])

    def handle_delete_session(self, user_id: str, session_id: str) -> ApiResponse:
        try:
            deleted = self.session_repository.delete_session(user_id, session_id)
        except Exception:
            logger.exception("Error deleting session %s for %s", session_id, user_id)
            return ApiResponse(500, {"success": False, "error": "Failed to delete session"})
        return ApiResponse(200, {"success": True, "deleted": deleted})

    def handle_daily_costs(self) -> ApiResponse:
        """Operator view of today's in-process spend."""
        snapshot = self.orchestrator.ledger.daily_snapshot()
        return ApiResponse(200, {
            "date": snapshot.date,
            "totalDailyCost": snapshot.total_daily_cost,
            "userDailyCosts": snapshot.user_daily_costs,
        })


def build_service(
    config: AppConfig,
    model: Optional[AnalysisModel] = None,
    notifier: Optional[ErrorNotifier] = None,
    ledger: Optional[CostLedger] = None,
) -> AnalysisService:
    """Wire an AnalysisService from configuration.

    A ledger may be passed in so several services in one process share the
    same daily aggregates.
    """
    db_path = config.storage.db_path
    sessions = SessionRepository(db_path)

    if ledger is None:
        ledger = CostLedger(
            policy=config.cost_limits.to_policy(),
            cost_repository=CostRepository(db_path),
            profile_repository=UserProfileRepository(db_path),
        )

    if model is None:
        from mpai_guard.sdk.openai_client import OpenAIAnalysisClient
        model = OpenAIAnalysisClient(
            model=config.pricing.model,
            max_tokens=config.pricing.output_token_budget,
        )

    orchestrator = AnalysisOrchestrator(
        ledger=ledger,
        context_window=ContextWindow(sessions, config.context.max_exchanges),
        model=model,
        session_repository=sessions,
        pricing=config.pricing.to_pricing(),
        cost_limits_enabled=config.cost_limits.enabled,
        output_token_budget=config.pricing.output_token_budget,
        exchange_ttl_days=config.storage.exchange_ttl_days,
        auto_synthesis_all=config.analysis.auto_synthesis_all,
    )
    return AnalysisService(orchestrator, sessions, notifier or LoggingErrorNotifier())
