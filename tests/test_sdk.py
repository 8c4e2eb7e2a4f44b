"""
Unit tests for SDK layer.

Tests the OpenAI analysis client: message assembly, usage mapping and
failure translation.
"""

from unittest.mock import Mock, patch

import pytest

from mpai_guard.core.classification import Bandwidth, Method, OutputStyle, RoleContext
from mpai_guard.core.errors import DownstreamModelFailure
from mpai_guard.sdk.openai_client import OpenAIAnalysisClient, is_token_limit_error


def _mock_response(text="Analysis text", prompt_tokens=120, completion_tokens=80, model="gpt-4o"):
    response = Mock()
    response.model = model
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    response.choices = [Mock(message=Mock(content=text))]
    return response


class TestOpenAIAnalysisClient:
    """Test OpenAIAnalysisClient wrapper."""

    @patch('mpai_guard.sdk.openai_client.OpenAI')
    def test_init_success(self, mock_openai_class):
        """Test successful initialization."""
        mock_openai_class.return_value = Mock()

        client = OpenAIAnalysisClient(model="gpt-4o", max_tokens=1000, timeout=30.0)

        assert client.model == "gpt-4o"
        assert client.max_tokens == 1000
        assert client.client is mock_openai_class.return_value
        mock_openai_class.assert_called_once_with(timeout=30.0)

    def test_init_missing_model(self):
        """Test initialization fails with missing model."""
        with pytest.raises(ValueError, match="model is required"):
            OpenAIAnalysisClient(model="")
        with pytest.raises(ValueError, match="model is required"):
            OpenAIAnalysisClient(model=None)

    def test_analyze_success(self):
        """Test a successful call maps text and usage."""
        openai_client = Mock()
        openai_client.chat.completions.create.return_value = _mock_response()
        client = OpenAIAnalysisClient(model="gpt-4o", max_tokens=2000, client=openai_client)

        history = [
            {"role": "user", "content": "earlier question"},
            {"role": "assistant", "content": "earlier answer"},
        ]
        result = client.analyze(
            "What now?", Method.QUICK, OutputStyle.NATURAL, RoleContext.PERSONAL,
            history=history, bandwidth=Bandwidth.LOW,
        )

        assert result.text == "Analysis text"
        assert result.model_used == "gpt-4o"
        assert result.usage.input_tokens == 120
        assert result.usage.output_tokens == 80

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["max_tokens"] == 2000
        messages = kwargs["messages"]
        assert messages[0]["role"] == "system"
        assert messages[1:3] == history
        assert messages[-1] == {"role": "user", "content": "What now?"}

    def test_model_name_falls_back_to_configured(self):
        openai_client = Mock()
        openai_client.chat.completions.create.return_value = _mock_response(model=None)
        client = OpenAIAnalysisClient(model="gpt-4o-mini", client=openai_client)

        result = client.analyze("hi", Method.QUICK, OutputStyle.NATURAL, RoleContext.PERSONAL)
        assert result.model_used == "gpt-4o-mini"

    def test_api_error_wrapped(self):
        """Test provider exceptions become DownstreamModelFailure."""
        openai_client = Mock()
        openai_client.chat.completions.create.side_effect = Exception("API Error")
        client = OpenAIAnalysisClient(client=openai_client)

        with pytest.raises(DownstreamModelFailure) as exc_info:
            client.analyze("hi", Method.QUICK, OutputStyle.NATURAL, RoleContext.PERSONAL)
        assert exc_info.value.token_limit_exceeded is False
        assert isinstance(exc_info.value.cause, Exception)

    def test_context_length_error_flagged(self):
        openai_client = Mock()
        openai_client.chat.completions.create.side_effect = Exception(
            "This model's maximum context length is 128000 tokens"
        )
        client = OpenAIAnalysisClient(client=openai_client)

        with pytest.raises(DownstreamModelFailure) as exc_info:
            client.analyze("hi", Method.QUICK, OutputStyle.NATURAL, RoleContext.PERSONAL)
        assert exc_info.value.token_limit_exceeded is True

    def test_missing_usage_is_failure(self):
        response = _mock_response()
        response.usage = None
        openai_client = Mock()
        openai_client.chat.completions.create.return_value = response
        client = OpenAIAnalysisClient(client=openai_client)

        with pytest.raises(DownstreamModelFailure, match="missing usage"):
            client.analyze("hi", Method.QUICK, OutputStyle.NATURAL, RoleContext.PERSONAL)


class TestTokenLimitDetection:
    """Test recognition of context-window errors."""

    @pytest.mark.parametrize("message", [
        "prompt is too long: 210000 tokens > 200000 maximum",
        "Error code: 400 - context_length_exceeded",
    ])
    def test_recognized(self, message):
        assert is_token_limit_error(Exception(message)) is True

    def test_error_code_attribute(self):
        error = Exception("bad request")
        error.code = "context_length_exceeded"
        assert is_token_limit_error(error) is True

    def test_other_errors(self):
        assert is_token_limit_error(Exception("rate limited")) is False
