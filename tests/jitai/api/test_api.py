"""
Tests for the JITAI REST API.

Covers:
- Health endpoints
- Decision, selection, outcome, intervention and result endpoints
- Analytics endpoints
- Request validation, engine errors and a missing engine
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from jitai.api import create_app
from jitai.config.settings import BanditConfig, JitaiSettings
from jitai.lib.exceptions import InvalidArmError
from jitai.models.enums import ContentArm
from jitai.services.engine import build_engine
from jitai.services.outcome_store import InMemoryOutcomeStore
from jitai.services.preference_store import PreferenceStore

CONTEXT = {
    "time_of_day": 15,
    "day_of_week": 2,
    "is_weekend": False,
    "target_app": "com.example.social",
    "session_count_this_bout": 2,
}


@pytest.fixture
def client():
    engine = build_engine(
        InMemoryOutcomeStore(),
        PreferenceStore(redis_service=None),
        settings=JitaiSettings(bandit=BanditConfig(random_seed=3)),
    )
    with TestClient(create_app(engine=engine)) as test_client:
        yield test_client


# =============================================================================
# Health
# =============================================================================


class TestHealth:
    def test_root_health(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_versioned_health(self, client) -> None:
        response = client.get("/api/v1/health")
        assert response.json() == {"success": True, "data": {"status": "ok"}}


# =============================================================================
# Decisions and content
# =============================================================================


class TestDecisions:
    def test_allowed_on_fresh_engine(self, client) -> None:
        response = client.post(
            "/api/v1/decisions",
            json={"context": CONTEXT, "session_duration_ms": 600_000},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["allowed"] is True
        assert data["decision"] == "INTERVENE_NOW"
        assert data["decision_source"] == "JITAI_APPROVED"
        assert data["timing_confidence"] == "LOW"

    def test_signals_are_reported(self, client) -> None:
        response = client.post(
            "/api/v1/decisions",
            json={
                "context": CONTEXT,
                "session_duration_ms": 600_000,
                "signals": {"persona": "CASUAL_USER", "persona_confidence": "HIGH", "opportunity_score": 72},
            },
        )
        data = response.json()["data"]
        assert data["persona"] == "CASUAL_USER"
        assert data["persona_confidence"] == "HIGH"
        assert data["opportunity_level"] == "EXCELLENT"

    def test_recorded_intervention_blocks_next_decision(self, client) -> None:
        assert client.post("/api/v1/interventions", json={"intervention_type": "REMINDER"}).status_code == 200
        response = client.post(
            "/api/v1/decisions",
            json={"context": CONTEXT, "session_duration_ms": 600_000},
        )
        data = response.json()["data"]
        assert data["allowed"] is False
        assert data["decision_source"] == "BASIC_RATE_LIMIT"
        assert data["cooldown_remaining_ms"] > 0

    def test_invalid_hour_rejected(self, client) -> None:
        response = client.post(
            "/api/v1/decisions",
            json={"context": {**CONTEXT, "time_of_day": 24}, "session_duration_ms": 600_000},
        )
        assert response.status_code == 422


class TestSelectionsAndOutcomes:
    def test_selection_then_outcome(self, client) -> None:
        response = client.post(
            "/api/v1/selections",
            json={"context": {**CONTEXT, "time_of_day": 23}, "intervention_id": 7},
        )
        assert response.status_code == 200
        selection = response.json()["data"]
        assert selection["content_type"] in {arm.value for arm in ContentArm}
        assert selection["excluded_arms"] == ["BreathingExercise", "Gamification"]
        assert selection["reason"].startswith("Selected ")

        outcome = client.post("/api/v1/outcomes", json={"intervention_id": 7, "user_choice": "GO_BACK"})
        assert outcome.json()["data"] == {"intervention_id": 7, "tracked": True, "reward": 1.0}

        repeat = client.post("/api/v1/outcomes", json={"intervention_id": 7, "user_choice": "GO_BACK"})
        assert repeat.json()["data"]["tracked"] is False

        report = client.get("/api/v1/analytics/content").json()["data"]
        shown = {item["content_type"]: item["total_shown"] for item in report}
        assert shown[selection["content_type"]] == 1

    def test_unknown_choice_is_neutral(self, client) -> None:
        client.post("/api/v1/selections", json={"context": CONTEXT, "intervention_id": 8})
        outcome = client.post("/api/v1/outcomes", json={"intervention_id": 8, "user_choice": "SHRUG"})
        assert outcome.json()["data"]["reward"] == 0.5


class TestResults:
    def test_store_result(self, client) -> None:
        response = client.post(
            "/api/v1/results",
            json={
                "session_id": 1,
                "target_app": "com.example.social",
                "intervention_type": "REMINDER",
                "content_type": "Quote",
                "hour_of_day": 9,
                "day_of_week": 1,
                "is_weekend": False,
                "user_choice": "GO_BACK",
                "timestamp": 1_760_000_000_000,
                "user_feedback": "HELPFUL",
            },
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"stored": True}

    def test_unknown_content_type_rejected(self, client) -> None:
        response = client.post(
            "/api/v1/results",
            json={
                "session_id": 1,
                "target_app": "com.example.social",
                "intervention_type": "REMINDER",
                "content_type": "Haiku",
                "hour_of_day": 9,
                "day_of_week": 1,
                "is_weekend": False,
                "user_choice": "GO_BACK",
                "timestamp": 1_760_000_000_000,
            },
        )
        assert response.status_code == 422


# =============================================================================
# Analytics
# =============================================================================


class TestAnalytics:
    def test_content_report(self, client) -> None:
        data = client.get("/api/v1/analytics/content").json()["data"]
        assert len(data) == len(ContentArm)
        assert all("summary" in item and item["total_shown"] == 0 for item in data)

    def test_frequency(self, client) -> None:
        assert client.get("/api/v1/analytics/frequency").json()["data"] == {"multiplier": 1.0}

    def test_burden(self, client) -> None:
        data = client.get("/api/v1/analytics/burden").json()["data"]
        assert data["direction"] == "STABLE"
        assert data["current_score"] == 0

    def test_timing_learned_from_outcome_context(self, client) -> None:
        assert client.get("/api/v1/analytics/timing").json()["data"] == {"hours": {}, "reliable": False}
        for intervention_id in (11, 12, 13):
            client.post("/api/v1/selections", json={"context": CONTEXT, "intervention_id": intervention_id})
            client.post(
                "/api/v1/outcomes",
                json={"intervention_id": intervention_id, "user_choice": "DISMISS", "context": CONTEXT},
            )
        data = client.get("/api/v1/analytics/timing").json()["data"]
        assert data == {"hours": {"15": 0.0}, "reliable": False}


# =============================================================================
# Errors
# =============================================================================


class TestErrors:
    def test_engine_validation_error_uses_envelope(self) -> None:
        engine = MagicMock()
        engine.can_show_intervention = AsyncMock(side_effect=InvalidArmError("Haiku"))
        with TestClient(create_app(engine=engine)) as client:
            response = client.post("/api/v1/decisions", json={"context": CONTEXT, "session_duration_ms": 600_000})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "validation_error"

    def test_unexpected_error_returns_500(self) -> None:
        engine = MagicMock()
        engine.get_frequency_multiplier = AsyncMock(side_effect=RuntimeError("boom"))
        with TestClient(create_app(engine=engine), raise_server_exceptions=False) as client:
            response = client.get("/api/v1/analytics/frequency")
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"

    def test_missing_engine_returns_503(self) -> None:
        client = TestClient(create_app())
        response = client.get("/api/v1/analytics/frequency")
        assert response.status_code == 503
