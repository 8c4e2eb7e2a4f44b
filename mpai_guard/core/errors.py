"""
Error taxonomy for the analysis pipeline.

Exceptions are raised where the condition is detected and translated to
HTTP-style status codes only at the API boundary.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .guardrails import LimitCheckResult


class MPAIError(Exception):
    """Base class for all pipeline errors."""
    status_code = 500


class ValidationError(MPAIError):
    """Request is malformed (e.g. empty query). No side effects occurred."""
    status_code = 400


class CostLimitExceeded(MPAIError):
    """Pre-flight cost check rejected the request. No model call was made."""
    status_code = 429

    def __init__(self, check: "LimitCheckResult"):
        self.check = check
        super().__init__("; ".join(check.messages) or "Cost limit exceeded")

    @property
    def violations(self) -> List[str]:
        return self.check.messages

    @property
    def monthly_limit_exceeded(self) -> bool:
        return self.check.monthly_limit_exceeded


TOKEN_LIMIT_MESSAGE = "Conversation is too long. Please start a new session."


class DownstreamModelFailure(MPAIError):
    """The analysis model call raised or returned an error.

    ``token_limit_exceeded`` marks the "conversation too long" case so the
    caller can suggest starting a new session.
    """
    status_code = 500

    def __init__(self, message: str, token_limit_exceeded: bool = False,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.token_limit_exceeded = token_limit_exceeded
        self.cause = cause

    @classmethod
    def conversation_too_long(cls, cause: Optional[BaseException] = None) -> "DownstreamModelFailure":
        return cls(TOKEN_LIMIT_MESSAGE, token_limit_exceeded=True, cause=cause)
