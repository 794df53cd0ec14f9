"""
Tests for API endpoints
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture
def app_instance():
    """FastAPI app with Firebase initialization mocked"""
    with patch('firebase_admin.credentials.Certificate'), \
         patch('firebase_admin.initialize_app'):
        from app.main import app

        yield app
        app.dependency_overrides.clear()


@pytest.fixture
def mock_current_user():
    """Mock current user for authenticated requests"""
    return {
        "uid": "test_user_123",
        "email": "test_user_123@example.com",
        "token": {"uid": "test_user_123"}
    }


@pytest.fixture
def client(app_instance, db_session, clock, mock_current_user):
    """Authenticated test client on the per-test database, with the clock frozen"""
    from fastapi.testclient import TestClient
    from app.core.clock import set_clock
    from app.core.database import get_db
    from app.core.middleware import get_current_user

    def override_get_db():
        yield db_session

    app_instance.dependency_overrides[get_db] = override_get_db
    app_instance.dependency_overrides[get_current_user] = lambda: mock_current_user
    set_clock(clock)

    return TestClient(app_instance)


@pytest.fixture
def anonymous_client(app_instance):
    from fastapi.testclient import TestClient

    return TestClient(app_instance)


def _create(client, name="Meditate", duration_value=7, **extra):
    return client.post("/api/v1/experiments", json={"name": name, "duration_value": duration_value, **extra})


class TestHealthEndpoint:
    """Test health check endpoint"""

    def test_health_check(self, anonymous_client):
        """Test health check returns 200"""
        response = anonymous_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "ok"}

    def test_health_check_database_down(self, app_instance, anonymous_client):
        from sqlalchemy.exc import OperationalError
        from app.core.database import get_db

        session = MagicMock()
        session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        app_instance.dependency_overrides[get_db] = lambda: session

        response = anonymous_client.get("/health")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["database"] == "unavailable"


class TestAuthentication:
    """Every API route needs a Firebase ID token"""

    def test_missing_token_rejected(self, anonymous_client):
        response = anonymous_client.get("/api/v1/experiments")

        assert response.status_code in (401, 403)

    def test_invalid_token_rejected(self, anonymous_client):
        with patch("app.core.middleware.verify_firebase_token", side_effect=ValueError("bad token")):
            response = anonymous_client.get(
                "/api/v1/experiments",
                headers={"Authorization": "Bearer not-a-token"}
            )

        assert response.status_code == 401

    def test_valid_token_accepted(self, app_instance, db_session):
        from fastapi.testclient import TestClient
        from app.core.database import get_db

        def override_get_db():
            yield db_session

        app_instance.dependency_overrides[get_db] = override_get_db
        client = TestClient(app_instance)

        with patch("app.core.middleware.verify_firebase_token", return_value={"uid": "u1", "email": "u1@example.com"}):
            response = client.post("/api/v1/users/me", headers={"Authorization": "Bearer good-token"})

        assert response.status_code == 200
        assert response.json()["id"] == "u1"


class TestUserEndpoints:
    """Test profile and preference endpoints"""

    def test_first_sign_in_creates_free_profile(self, client):
        response = client.post("/api/v1/users/me")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "test_user_123"
        assert data["tier"] == "free"
        assert data["reminder_time"] == "20:00:00"
        assert data["has_notification_token"] is False

    def test_unknown_user_not_found(self, client):
        response = client.get("/api/v1/users/me")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_update_preferences(self, client):
        client.post("/api/v1/users/me")

        response = client.put(
            "/api/v1/users/me/preferences",
            json={"reminder_time": "07:30", "notification_token": "device_token"}
        )

        assert response.status_code == 200
        assert response.json()["reminder_time"] == "07:30:00"
        assert response.json()["has_notification_token"] is True

        response = client.put("/api/v1/users/me/preferences", json={"clear_notification_token": True})
        assert response.json()["has_notification_token"] is False
        assert response.json()["reminder_time"] == "07:30:00"

    def test_tier_status(self, client, free_user):
        _create(client)

        response = client.get("/api/v1/users/me/tier-status")

        assert response.status_code == 200
        assert response.json()["active_experiments"] == 1
        assert response.json()["limit"] == 3
        assert response.json()["remaining"] == 2


class TestExperimentEndpoints:
    """Test experiment lifecycle endpoints"""

    def test_create_experiment(self, client, free_user):
        response = _create(client, duration_value=2, duration_unit="weeks")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "active"
        assert data["start_date"] == "2024-01-01"
        assert data["duration_days"] == 14
        assert data["end_date"] == "2024-01-15"

    def test_fourth_experiment_hits_tier_limit(self, client, free_user):
        for name in ("Meditate", "Journal", "Walk"):
            assert _create(client, name=name).status_code == 201

        response = _create(client, name="Read")

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "tier_limit_exceeded"
        assert detail["limit"] == 3

    def test_invalid_duration_rejected(self, client, free_user):
        response = _create(client, duration_value=0)

        assert response.status_code == 422

    def test_past_start_rejected(self, client, free_user):
        response = _create(client, start_date="2023-12-31")

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_input"

    def test_list_by_status(self, client, free_user):
        _create(client, name="Meditate")
        _create(client, name="Journal")

        active = client.get("/api/v1/experiments", params={"status": "active"}).json()["experiments"]
        completed = client.get("/api/v1/experiments", params={"status": "completed"}).json()["experiments"]

        assert len(active) == 2
        assert completed == []

    def test_other_users_experiment_not_found(self, client, free_user, make_user, make_experiment):
        other = make_user(user_id="someone_else")
        experiment = make_experiment(other)

        response = client.get(f"/api/v1/experiments/{experiment.id}")

        assert response.status_code == 404

    def test_detail_reports_streak_and_progress(self, client, free_user, clock):
        experiment_id = _create(client).json()["id"]
        for day, completed in [(1, True), (2, True), (3, False), (4, True), (5, True), (6, True)]:
            clock.set(datetime(2024, 1, day, 20, 0))
            response = client.post(
                f"/api/v1/experiments/{experiment_id}/check-ins",
                json={"date": f"2024-01-0{day}", "completed": completed}
            )
            assert response.status_code == 200

        data = client.get(f"/api/v1/experiments/{experiment_id}").json()

        assert data["current_streak"] == 3
        assert data["progress"] == pytest.approx(6 / 7)

    def test_check_in_defaults_to_today(self, client, free_user):
        experiment_id = _create(client).json()["id"]

        response = client.post(f"/api/v1/experiments/{experiment_id}/check-ins", json={"completed": True})

        assert response.status_code == 200
        assert response.json()["check_in_date"] == "2024-01-01"

    def test_check_in_outside_window(self, client, free_user):
        experiment_id = _create(client).json()["id"]

        response = client.post(
            f"/api/v1/experiments/{experiment_id}/check-ins",
            json={"date": "2024-01-08", "completed": True}
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "out_of_window"
        assert detail["end_date"] == "2024-01-08"

    def test_check_in_for_tomorrow_rejected(self, client, free_user):
        experiment_id = _create(client).json()["id"]

        response = client.post(
            f"/api/v1/experiments/{experiment_id}/check-ins",
            json={"date": "2024-01-02", "completed": True}
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "out_of_window"

    def test_list_check_ins(self, client, free_user):
        experiment_id = _create(client).json()["id"]
        client.post(f"/api/v1/experiments/{experiment_id}/check-ins", json={"completed": True, "note": "10 minutes"})

        data = client.get(f"/api/v1/experiments/{experiment_id}/check-ins").json()

        assert len(data["check_ins"]) == 1
        assert data["check_ins"][0]["note"] == "10 minutes"
        assert data["current_streak"] == 1


class TestReflectionEndpoints:
    """Test reflection endpoints"""

    def test_end_reflection_with_continue(self, client, free_user, clock):
        experiment_id = _create(client, duration_value=14).json()["id"]
        clock.set(datetime(2024, 1, 15, 9, 0))

        response = client.post(
            f"/api/v1/experiments/{experiment_id}/reflections",
            json={"content": "Keeping it", "is_end": True, "next_action": "continue"}
        )

        assert response.status_code == 201
        data = response.json()
        assert data["experiment"]["status"] == "completed"
        assert data["next_experiment"]["name"] == "Meditate"
        assert data["next_experiment"]["status"] == "active"
        assert data["next_experiment"]["start_date"] == "2024-01-15"
        assert data["next_experiment"]["source_experiment_id"] == experiment_id

    def test_end_reflection_requires_next_action(self, client, free_user):
        experiment_id = _create(client).json()["id"]

        response = client.post(
            f"/api/v1/experiments/{experiment_id}/reflections",
            json={"content": "Done", "is_end": True}
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "missing_next_action"

    def test_completed_experiment_rejects_writes(self, client, free_user):
        experiment_id = _create(client).json()["id"]
        client.post(
            f"/api/v1/experiments/{experiment_id}/reflections",
            json={"content": "Done", "is_end": True, "next_action": "end"}
        )

        reflection = client.post(f"/api/v1/experiments/{experiment_id}/reflections", json={"content": "More"})
        check_in = client.post(f"/api/v1/experiments/{experiment_id}/check-ins", json={"completed": True})

        assert reflection.status_code == 409
        assert reflection.json()["detail"]["code"] == "already_completed"
        assert check_in.status_code == 409
        assert check_in.json()["detail"]["code"] == "experiment_not_active"

    def test_list_reflections(self, client, free_user):
        experiment_id = _create(client).json()["id"]
        client.post(f"/api/v1/experiments/{experiment_id}/reflections", json={"content": "Day one"})

        data = client.get(f"/api/v1/experiments/{experiment_id}/reflections").json()

        assert [r["content"] for r in data["reflections"]] == ["Day one"]


class TestNotificationActionEndpoint:
    """Test yes/no taps on the reminder notification"""

    def test_yes_records_completed_check_in(self, client, free_user):
        experiment_id = _create(client).json()["id"]

        response = client.post(
            "/api/v1/notifications/action",
            json={"experimentId": experiment_id, "action": "yes", "checkInDate": "2024-01-01"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["completed"] is True
        assert data["check_in_date"] == "2024-01-01"
        assert data["current_streak"] == 1

    def test_no_records_missed_day(self, client, free_user):
        experiment_id = _create(client).json()["id"]

        response = client.post("/api/v1/notifications/action", json={"experimentId": experiment_id, "action": "no"})

        assert response.status_code == 200
        assert response.json()["completed"] is False
        assert response.json()["current_streak"] == 0

    def test_unknown_action_rejected(self, client, free_user):
        experiment_id = _create(client).json()["id"]

        response = client.post(
            "/api/v1/notifications/action",
            json={"experimentId": experiment_id, "action": "maybe"}
        )

        assert response.status_code == 422


class TestStoreUnavailable:
    """Transient store failures surface as retryable 503s"""

    def test_store_unavailable_returns_503_with_retry_after(self, app_instance, client):
        from app.api.v1.routes.experiments import get_experiment_service
        from app.core.errors import StoreUnavailable

        service = MagicMock()
        service.create_experiment.side_effect = StoreUnavailable("Experiment store unavailable", operation="create_experiment")
        app_instance.dependency_overrides[get_experiment_service] = lambda: service

        response = _create(client)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["detail"]["code"] == "store_unavailable"
