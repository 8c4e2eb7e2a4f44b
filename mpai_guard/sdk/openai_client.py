"""
OpenAI analysis-model client.

Sends a classified query plus prior conversation turns to the model and
returns the text and exact token usage. Provider failures are translated to
DownstreamModelFailure; cost accounting is left to the caller.
"""

import json
import logging
from typing import Dict, List, Optional

from openai import OpenAI

from ..core.classification import Bandwidth, Method, OutputStyle, RoleContext
from ..core.errors import DownstreamModelFailure
from ..core.orchestrator import ModelResponse
from ..core.pricing import DEFAULT_OUTPUT_TOKEN_BUDGET
from ..core.prompts import build_system_prompt
from ..core.token_counter import TokenUsage, estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
LARGE_PROMPT_TOKENS = 150_000

# Substrings providers use when the prompt exceeds the context window.
_TOKEN_LIMIT_MARKERS = (
    "prompt is too long",
    "context_length_exceeded",
    "maximum context length",
)


def is_token_limit_error(error: BaseException) -> bool:
    text = f"{getattr(error, 'code', '') or ''} {error}".lower()
    return any(marker in text for marker in _TOKEN_LIMIT_MARKERS)


class OpenAIAnalysisClient:
    """Analysis-model adapter over OpenAI chat completions."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_OUTPUT_TOKEN_BUDGET,
        timeout: Optional[float] = 120.0,
        client: Optional[OpenAI] = None,
    ):
        """Initialize the client.

        Args:
            model: OpenAI model name (required)
            max_tokens: Output-token budget per call
            timeout: Request timeout in seconds
            client: Preconfigured OpenAI client (created from env if omitted)

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.max_tokens = max_tokens
        self.client = client or OpenAI(timeout=timeout)

    def analyze(
        self,
        query: str,
        method: Method,
        output_style: OutputStyle,
        role_context: RoleContext,
        history: Optional[List[Dict[str, str]]] = None,
        bandwidth: Bandwidth = Bandwidth.MEDIUM,
    ) -> ModelResponse:
        """Run one analysis call.

        Args:
            query: User query text
            method: Analysis method
            output_style: Response style
            role_context: Professional or personal framing
            history: Prior turns in chronological order
            bandwidth: Detected bandwidth

        Returns:
            ModelResponse with text and exact usage

        Raises:
            DownstreamModelFailure: If the call fails or returns no usage
        """
        system_prompt = build_system_prompt(method, output_style, role_context, bandwidth)
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": query})

        estimated = estimate_tokens(len(system_prompt) + len(json.dumps(messages)))
        logger.info(
            "Calling %s | method=%s style=%s context=%s history=%d estimated_tokens=%d",
            self.model, method.value, output_style.value, role_context.value,
            len(history or []), estimated,
        )
        if estimated > LARGE_PROMPT_TOKENS:
            logger.warning("High token usage detected. Consider starting a new session.")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.error("Analysis model call failed: %s", e)
            if is_token_limit_error(e):
                raise DownstreamModelFailure.conversation_too_long(cause=e) from e
            raise DownstreamModelFailure(str(e), cause=e) from e

        usage = response.usage
        if not usage:
            raise DownstreamModelFailure("Model response missing usage information")

        choice = response.choices[0] if response.choices else None
        text = (choice.message.content if choice and choice.message else None) or ""

        logger.info(
            "Model response received (%d chars) | tokens in=%d out=%d",
            len(text), usage.prompt_tokens, usage.completion_tokens,
        )

        return ModelResponse(
            text=text,
            model_used=getattr(response, "model", None) or self.model,
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens,
            ),
        )
