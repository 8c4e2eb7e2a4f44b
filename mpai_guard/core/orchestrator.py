"""
Analysis orchestration.

One request moves through:

    RECEIVED -> CLASSIFIED -> COST_CHECKED (ALLOWED | REJECTED)
             -> MODEL_CALLED (SUCCESS | FAILED)
             -> COST_RECORDED -> PERSISTED -> RESPONDED

REJECTED raises CostLimitExceeded and FAILED raises DownstreamModelFailure;
neither records cost nor persists an exchange. Cost is recorded before the
exchange is written because the exchange carries the recorded cost.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol

from .classification import (
    Bandwidth,
    Method,
    OutputStyle,
    RoleContext,
    classify,
    detect_output_style,
    resolve_output_style,
    upgrade_synthesis_method,
)
from .context import ContextWindow
from .errors import CostLimitExceeded, DownstreamModelFailure, ValidationError
from .ledger import CostLedger, utc_now
from .pricing import (
    DEFAULT_OUTPUT_TOKEN_BUDGET,
    DEFAULT_PRICING,
    CostBreakdown,
    ModelPricing,
    calculate_cost,
    estimate_cost,
)
from .token_counter import TokenUsage
from mpai_guard.storage.models import SessionExchange
from mpai_guard.storage.repository import SessionRepository

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "user-1"
EXCHANGE_TTL_DAYS = 30
PREVIEW_LENGTH = 120


@dataclass(frozen=True)
class ModelResponse:
    """Text and usage returned by one analysis-model call."""
    text: str
    model_used: str
    usage: TokenUsage
    perspectives_count: int = 1


class AnalysisModel(Protocol):
    def analyze(
        self,
        query: str,
        method: Method,
        output_style: OutputStyle,
        role_context: RoleContext,
        history: Optional[List[Dict[str, str]]] = None,
        bandwidth: Bandwidth = Bandwidth.MEDIUM,
    ) -> ModelResponse:
        ...


@dataclass(frozen=True)
class AnalysisQuery:
    """Immutable input to one analysis.

    A missing ``session_id`` starts a new session.
    """
    text: str
    user_id: str = DEFAULT_USER_ID
    session_id: Optional[str] = None
    method: Optional[Method] = None
    output_style: Optional[OutputStyle] = None
    role_context: Optional[RoleContext] = None
    user_email: Optional[str] = None


@dataclass(frozen=True)
class ContextInfo:
    message_count: int
    estimated_tokens: int

    def to_dict(self) -> dict:
        return {"messageCount": self.message_count, "estimatedTokens": self.estimated_tokens}


@dataclass
class AnalysisResult:
    """Caller-facing result. Cost figures are deliberately not included."""
    response_text: str
    method: Method
    output_style: OutputStyle
    role_context: RoleContext
    bandwidth: Bandwidth
    session_id: str
    analysis_id: str
    model_used: str
    usage: TokenUsage
    context_info: ContextInfo
    persisted: bool = True
    success: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "response": self.response_text,
            "method": self.method.value,
            "sessionId": self.session_id,
            "analysisId": self.analysis_id,
            "modelUsed": self.model_used,
            "usage": self.usage.to_dict(),
            "contextInfo": self.context_info.to_dict(),
        }


def _new_id() -> str:
    return str(uuid.uuid4())


class AnalysisOrchestrator:
    """Runs one query through classification, cost governance, the model
    call, cost recording and persistence."""

    def __init__(
        self,
        ledger: CostLedger,
        context_window: ContextWindow,
        model: AnalysisModel,
        session_repository: SessionRepository,
        pricing: ModelPricing = DEFAULT_PRICING,
        cost_limits_enabled: bool = False,
        output_token_budget: int = DEFAULT_OUTPUT_TOKEN_BUDGET,
        exchange_ttl_days: int = EXCHANGE_TTL_DAYS,
        auto_synthesis_all: bool = False,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.ledger = ledger
        self.context_window = context_window
        self.model = model
        self.session_repository = session_repository
        self.pricing = pricing
        self.cost_limits_enabled = cost_limits_enabled
        self.output_token_budget = output_token_budget
        self.exchange_ttl_days = exchange_ttl_days
        self.auto_synthesis_all = auto_synthesis_all
        self.clock = clock
        self.id_factory = id_factory

    def analyze(self, query: AnalysisQuery) -> AnalysisResult:
        """Analyze one query.

        Args:
            query: The user's query and optional overrides

        Returns:
            AnalysisResult for a successful model call

        Raises:
            ValidationError: If the query text is empty
            CostLimitExceeded: If limits are enabled and any tier is breached
            DownstreamModelFailure: If the model call fails
        """
        text = query.text or ""
        if not text.strip():
            raise ValidationError("User query is required")

        session_id = query.session_id or self.id_factory()
        analysis_id = self.id_factory()
        logger.info(
            "New request | Session: %s... | User: %s | Query: %r",
            session_id[:8], query.user_id, text[:50],
        )

        classification = classify(text)
        context = self.context_window.load(query.user_id, query.session_id)

        if query.method is not None:
            method = query.method
        else:
            method = classification.method
            if self.auto_synthesis_all:
                method = upgrade_synthesis_method(method, context.exchange_count)
            logger.info(
                "Auto-selected method: %s (bandwidth: %s)",
                method.value, classification.bandwidth.value,
            )

        output_style = query.output_style or resolve_output_style(method, detect_output_style(text))
        role_context = query.role_context or classification.role_context

        estimate = estimate_cost(
            input_chars=len(text),
            prior_messages_length=context.serialized_length(),
            output_token_budget=self.output_token_budget,
            pricing=self.pricing,
        )
        if self.cost_limits_enabled:
            check = self.ledger.check_limits(query.user_id, estimate)
            if not check.allowed:
                raise CostLimitExceeded(check)

        try:
            response = self.model.analyze(
                text,
                method,
                output_style,
                role_context,
                history=context.to_messages(),
                bandwidth=classification.bandwidth,
            )
        except DownstreamModelFailure:
            raise
        except Exception as e:
            logger.error("Analysis model raised: %s", e)
            raise DownstreamModelFailure(str(e), cause=e) from e

        actual = calculate_cost(response.usage, self.pricing)
        self.ledger.record_cost(query.user_id, actual.total_cost)

        exchange = self._build_exchange(
            query, session_id, analysis_id, method, output_style, role_context,
            classification.bandwidth, response, actual,
        )
        persisted = self._persist(exchange)

        return AnalysisResult(
            response_text=response.text,
            method=method,
            output_style=output_style,
            role_context=role_context,
            bandwidth=classification.bandwidth,
            session_id=session_id,
            analysis_id=analysis_id,
            model_used=response.model_used,
            usage=response.usage,
            context_info=ContextInfo(
                message_count=context.message_count,
                estimated_tokens=response.usage.input_tokens,
            ),
            persisted=persisted,
        )

    def _build_exchange(
        self,
        query: AnalysisQuery,
        session_id: str,
        analysis_id: str,
        method: Method,
        output_style: OutputStyle,
        role_context: RoleContext,
        bandwidth: Bandwidth,
        response: ModelResponse,
        actual: CostBreakdown,
    ) -> SessionExchange:
        now = self.clock()
        expires_at = int((now + timedelta(days=self.exchange_ttl_days)).timestamp())
        return SessionExchange(
            user_id=query.user_id,
            session_id=session_id,
            analysis_id=analysis_id,
            user_query=query.text,
            response=response.text,
            method=method.value,
            output_style=output_style.value,
            role_context=role_context.value,
            bandwidth=bandwidth.value,
            preview=response.text[:PREVIEW_LENGTH],
            perspectives=f"{response.perspectives_count} perspectives",
            cost=actual.total_cost,
            input_tokens=actual.input_tokens,
            output_tokens=actual.output_tokens,
            user_email=query.user_email,
            timestamp=now,
            expires_at=expires_at,
        )

    def _persist(self, exchange: SessionExchange) -> bool:
        # Losing one turn of history is acceptable; failing the analysis is not.
        try:
            self.session_repository.append_exchange(exchange)
        except Exception:
            logger.exception(
                "Failed to persist exchange %s for session %s",
                exchange.analysis_id, exchange.session_id,
            )
            return False
        logger.info(
            "Saved analysis %s %s email for user %s",
            exchange.analysis_id, "with" if exchange.user_email else "without", exchange.user_id,
        )
        return True
