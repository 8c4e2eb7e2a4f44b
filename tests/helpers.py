"""
Test doubles and builders shared across test modules.
"""

from datetime import datetime, timedelta, timezone

from mpai_guard.core.orchestrator import ModelResponse
from mpai_guard.core.token_counter import TokenUsage
from mpai_guard.storage.models import SessionExchange

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeModel:
    """Analysis model that records its calls and returns canned usage."""

    def __init__(self, text="Here is my analysis.", input_tokens=1000, output_tokens=500,
                 error=None):
        self.text = text
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.error = error
        self.calls = []

    def analyze(self, query, method, output_style, role_context, history=None, bandwidth=None):
        self.calls.append({
            "query": query,
            "method": method,
            "output_style": output_style,
            "role_context": role_context,
            "history": list(history or []),
            "bandwidth": bandwidth,
        })
        if self.error is not None:
            raise self.error
        return ModelResponse(
            text=self.text,
            model_used="test-model",
            usage=TokenUsage(self.input_tokens, self.output_tokens),
        )


def make_exchange(index, user_id="alice", session_id="s1", expires_at=None, **overrides):
    timestamp = BASE_TIME + timedelta(minutes=index)
    values = dict(
        user_id=user_id,
        session_id=session_id,
        analysis_id=f"a{index}",
        user_query=f"question {index}",
        response=f"answer {index}",
        timestamp=timestamp,
        expires_at=expires_at if expires_at is not None else int(timestamp.timestamp()) + 86400,
        method="QUICK",
    )
    values.update(overrides)
    return SessionExchange(**values)
