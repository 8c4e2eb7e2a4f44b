"""
Tests for the request handlers: status mapping, payload shapes and token
parsing.
"""
import base64
import json
from unittest.mock import Mock

import pytest

from helpers import FakeModel, make_exchange
from mpai_guard.api.handlers import (
    MODEL_FAILURE,
    TECHNICAL_DIFFICULTIES,
    AnalysisService,
    build_service,
    extract_email_from_auth_header,
)
from mpai_guard.config.loader import AppConfig, CostLimitsConfig, StorageConfig
from mpai_guard.core.errors import DownstreamModelFailure
from mpai_guard.storage.repository import SessionRepository, UserProfileRepository


def _bearer(claims):
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode("utf-8")).decode("ascii")
    return f"Bearer header.{payload.rstrip('=')}.signature"


class TestEmailExtraction:
    """Test reading the email claim from a bearer token."""

    def test_email_claim(self):
        assert extract_email_from_auth_header(_bearer({"email": "a@example.com"})) == "a@example.com"

    def test_fallback_claims(self):
        assert extract_email_from_auth_header(_bearer({"cognito:username": "u@example.com"})) == \
            "u@example.com"
        assert extract_email_from_auth_header(_bearer({"cognito:email": "c@example.com"})) == \
            "c@example.com"

    @pytest.mark.parametrize("header", [
        None,
        "",
        "Basic abc",
        "Bearer garbage",
        "Bearer a.!!!.c",
    ])
    def test_unparseable_yields_none(self, header):
        assert extract_email_from_auth_header(header) is None

    def test_no_email_claim(self):
        assert extract_email_from_auth_header(_bearer({"sub": "123"})) is None


class TestHandleAnalyze:
    """Test the analyze handler against a real pipeline with a fake model."""

    @pytest.fixture(autouse=True)
    def _setup(self, db_path):
        self.db_path = db_path
        self.notifier = Mock()

    def _service(self, model=None, **limits):
        config = AppConfig(
            cost_limits=CostLimitsConfig(enabled=True, **limits),
            storage=StorageConfig(db_path=self.db_path),
        )
        return build_service(config, model=model or FakeModel(), notifier=self.notifier)

    @pytest.mark.parametrize("body", [{}, {"userQuery": ""}, {"userQuery": "   "}, {"userQuery": 5}])
    def test_missing_query_is_400(self, body):
        response = self._service().handle_analyze(body)
        assert response.status_code == 400
        assert response.body == {"success": False, "error": "User query is required"}

    def test_unknown_method_is_400(self):
        response = self._service().handle_analyze({"userQuery": "hello", "method": "MAGIC"})
        assert response.status_code == 400
        assert "method must be one of" in response.body["error"]

    def test_success_is_200(self):
        response = self._service().handle_analyze(
            {"userQuery": "What do you think?", "userId": "alice", "method": "coaching_plan"},
            headers={"Authorization": _bearer({"email": "alice@example.com"})},
        )

        assert response.status_code == 200
        assert response.body["success"] is True
        assert response.body["method"] == "ACTION_PLAN"
        assert response.body["response"] == "Here is my analysis."

        [exchange] = SessionRepository(self.db_path).list_user_history("alice")
        assert exchange.user_email == "alice@example.com"
        assert exchange.session_id == response.body["sessionId"]

    def test_default_user_id(self):
        self._service().handle_analyze({"userQuery": "What do you think?"})
        assert len(SessionRepository(self.db_path).list_user_history("user-1")) == 1

    def test_monthly_limit_is_429_with_figures(self):
        UserProfileRepository(self.db_path).set_monthly_limit("alice", 0.01)
        model = FakeModel()
        response = self._service(model).handle_analyze({"userQuery": "hello", "userId": "alice"})

        assert response.status_code == 429
        assert response.body["costLimitExceeded"] is True
        assert response.body["monthlyLimitExceeded"] is True
        assert response.body["monthlyCost"] == 0.0
        assert response.body["monthlyLimit"] == pytest.approx(0.01)
        assert response.body["monthlyRemaining"] == pytest.approx(0.01)
        assert response.body["error"] == (
            "Monthly usage limit reached. You've used $0.00 of your $0.01 monthly limit."
        )
        assert model.calls == []

    def test_other_limits_report_every_reason(self):
        service = self._service(max_cost_per_request=0.001, max_cost_total_per_day=0.002)
        response = service.handle_analyze({"userQuery": "hello"})

        assert response.status_code == 429
        assert response.body["success"] is False
        assert response.body["costLimitExceeded"] is True
        assert "monthlyLimitExceeded" not in response.body
        assert response.body["violations"] == ["per_request", "total_daily"]
        error = response.body["error"]
        assert error.startswith("Usage limit reached: ")
        assert "per-request limit ($0.0010)" in error
        assert "Total daily cost" in error

    @pytest.mark.parametrize("name", ["sessionId", "userId"])
    def test_non_string_ids_are_400(self, name):
        model = FakeModel()
        response = self._service(model).handle_analyze({"userQuery": "hello", name: 5})

        assert response.status_code == 400
        assert response.body == {"success": False, "error": f"{name} must be a string"}
        assert model.calls == []
        self.notifier.notify.assert_not_called()

    def test_model_failure_is_500(self):
        model = FakeModel(error=RuntimeError("secret provider detail"))
        response = self._service(model).handle_analyze({"userQuery": "hello"})

        assert response.status_code == 500
        assert response.body == {"success": False, "error": MODEL_FAILURE}
        assert "secret" not in json.dumps(response.body)

    def test_token_limit_failure_is_flagged(self):
        model = FakeModel(error=DownstreamModelFailure.conversation_too_long())
        response = self._service(model).handle_analyze({"userQuery": "hello"})

        assert response.status_code == 500
        assert response.body["tokenLimitExceeded"] is True
        assert response.body["error"] == "Conversation is too long. Please start a new session."

    def test_unexpected_error_notifies(self):
        orchestrator = Mock()
        orchestrator.analyze.side_effect = KeyError("boom")
        service = AnalysisService(orchestrator, Mock(), self.notifier)

        response = service.handle_analyze({"userQuery": "hello", "userId": "alice"})

        assert response.status_code == 500
        assert response.body == {"success": False, "error": TECHNICAL_DIFFICULTIES}
        self.notifier.notify.assert_called_once()
        report = self.notifier.notify.call_args[0][0]
        assert report.type == "API_ERROR"
        assert report.context["userId"] == "alice"

    def test_notifier_failure_does_not_escape(self):
        orchestrator = Mock()
        orchestrator.analyze.side_effect = KeyError("boom")
        self.notifier.notify.side_effect = RuntimeError("mail down")
        service = AnalysisService(orchestrator, Mock(), self.notifier)

        assert service.handle_analyze({"userQuery": "hello"}).status_code == 500

    def test_daily_costs_view(self):
        service = self._service()
        service.handle_analyze({"userQuery": "hello", "userId": "alice"})
        service.handle_analyze({"userQuery": "hello again", "userId": "bob"})

        response = service.handle_daily_costs()
        assert response.status_code == 200
        assert response.body["totalDailyCost"] == pytest.approx(0.021)
        assert response.body["userDailyCosts"] == {
            "alice": pytest.approx(0.0105),
            "bob": pytest.approx(0.0105),
        }
        assert len(response.body["date"]) == 10


class TestHistoryHandlers:
    """Test history, session and delete handlers."""

    def test_history_and_session(self, db_path):
        sessions = SessionRepository(db_path)
        sessions.append_exchange(make_exchange(0, session_id="s1", user_email="a@example.com"))
        sessions.append_exchange(make_exchange(1, session_id="s2"))
        service = AnalysisService(Mock(), sessions)

        history = service.handle_history("alice")
        assert history.status_code == 200
        assert [item["sessionId"] for item in history.body] == ["s2", "s1"]
        assert history.body[1]["user_email"] == "a@example.com"
        assert "user_email" not in history.body[0]

        session = service.handle_session("alice", "s1")
        assert [item["analysisId"] for item in session.body] == ["a0"]

    def test_delete_session(self, db_path):
        sessions = SessionRepository(db_path)
        sessions.append_exchange(make_exchange(0, session_id="s1"))
        service = AnalysisService(Mock(), sessions)

        response = service.handle_delete_session("alice", "s1")
        assert response.body == {"success": True, "deleted": 1}
        assert sessions.count_session_exchanges("alice", "s1") == 0

    def test_store_failure_is_500(self):
        sessions = Mock()
        sessions.list_user_history.side_effect = RuntimeError("store down")
        response = AnalysisService(Mock(), sessions).handle_history("alice")
        assert response.status_code == 500
