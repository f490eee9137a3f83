"""
HTTP-level tests for the extension endpoints.

The app runs without its lifespan; services are wired against the
in-memory repository through dependency overrides.
"""

import json
import logging
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from conftest import NOW
from nudge.dependencies import _default_services, get_services
from nudge.main import app
from nudge.models.domain.user_domain import BreachRecord, TaskType
from nudge.routes.instructions import instructions_dependency
from nudge.services.instructions_service import InstructionsServiceError


class StubInstructions:
    def __init__(self, error: bool = False):
        self.error = error
        self.calls = []

    async def get_instructions(self, task_type, domain):
        self.calls.append((task_type, domain))
        if self.error:
            raise InstructionsServiceError("upstream down")
        return "Open Settings > Security"


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_first_poll_returns_initial(client, repository, breach_lookup, codec):
    breach_lookup.breaches["a@x.com"] = [BreachRecord(name="Adobe", domain="adobe.com")]

    response = client.post("/popup", json={"email": "a@x.com", "url": "https://github.com/"})

    assert response.status_code == 200
    assert response.json() == {"initial": True}
    task = repository.users["a@x.com"].tasks[0]
    assert codec.decrypt(task.account) == "a@x.com"


@pytest.mark.parametrize(
    "body",
    [
        {"url": "https://github.com"},
        {"email": "", "url": "https://github.com"},
        {"email": "no-at-sign", "url": "https://github.com"},
        {"email": "a@x.com"},
    ],
)
def test_popup_rejects_malformed_body(client, repository, body):
    response = client.post("/popup", json=body)

    assert response.status_code == 400
    assert repository.users == {}


def test_popup_rejects_url_without_host(client):
    response = client.post("/popup", json={"email": "a@x.com", "url": "github"})

    assert response.status_code == 400


def test_popup_offers_two_factor_task(client, make_user):
    make_user()

    response = client.post("/popup", json={"email": "a@x.com", "url": "https://github.com/login"})

    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "2fa"
    assert body["domain"] == "github.com"
    assert body["survey"] is False
    assert "account" not in body


def test_popup_without_content_is_204(client, make_user):
    make_user()

    response = client.post("/popup", json={"email": "a@x.com", "url": "https://example.org"})

    assert response.status_code == 204
    assert response.content == b""


def test_popup_survey_request(client, make_user):
    make_user(interactions=[(TaskType.PASSWORD_BREACH, "adobe.com", NOW - timedelta(hours=1))])

    response = client.post("/popup", json={"email": "a@x.com", "url": "https://example.org"})

    body = response.json()
    assert body["survey"] is True
    assert body["type"] == "pw"
    assert body["domain"] == "adobe.com"


def test_email_clears_initial_and_reports_tasks(client, repository, breach_lookup, make_user):
    make_user(initial=True)
    breach_lookup.breaches["b@y.com"] = [BreachRecord(name="Canva", domain="canva.com")]

    response = client.post("/email", json={"email": "a@x.com", "emails": ["b@y.com"]})

    assert response.status_code == 201
    assert response.json() == {"success": True, "message": "1 tasks created"}
    assert repository.users["a@x.com"].initial is False


def test_email_for_unknown_user(client):
    response = client.post("/email", json={"email": "ghost@x.com", "emails": []})

    assert response.status_code == 400


def test_interaction_is_recorded(client, repository, codec, make_user):
    make_user()

    response = client.post(
        "/interaction",
        json={"email": "a@x.com", "taskType": "pw", "domain": "adobe.com", "affirmative": True},
    )

    assert response.status_code == 201
    stored = repository.users["a@x.com"].interactions[0]
    assert stored.type == TaskType.PASSWORD_BREACH
    assert codec.decrypt(stored.domain) == "adobe.com"


def test_interaction_rejects_unknown_task_type(client, make_user):
    make_user()

    response = client.post(
        "/interaction", json={"email": "a@x.com", "taskType": "sms", "domain": "adobe.com"}
    )

    assert response.status_code == 400


def test_interaction_for_unknown_user(client):
    response = client.post(
        "/interaction", json={"email": "ghost@x.com", "taskType": "pw", "domain": "adobe.com"}
    )

    assert response.status_code == 400


def test_survey_is_stored(client, repository, make_user):
    make_user(interactions=[(TaskType.TWO_FACTOR_AUTH, "github.com", NOW - timedelta(hours=1))])

    response = client.post(
        "/survey",
        json={
            "email": "a@x.com",
            "taskType": "2fa",
            "domain": "github.com",
            "survey": {"enabled": True, "difficulty": 2},
        },
    )

    assert response.status_code == 201
    assert repository.users["a@x.com"].interactions[0].survey == {"enabled": True, "difficulty": 2}


def test_survey_without_open_interaction_is_rejected(client, repository, make_user):
    make_user()

    response = client.post(
        "/survey",
        json={"email": "a@x.com", "taskType": "pw", "domain": "adobe.com", "survey": "done"},
    )

    assert response.status_code == 400
    assert repository.writes == []


def test_survey_requires_feedback(client, make_user):
    make_user(interactions=[(TaskType.PASSWORD_BREACH, "adobe.com", NOW)])

    response = client.post(
        "/survey",
        json={"email": "a@x.com", "taskType": "pw", "domain": "adobe.com", "survey": None},
    )

    assert response.status_code == 400


def test_instructions_endpoint():
    stub = StubInstructions()
    app.dependency_overrides[instructions_dependency] = lambda: stub
    try:
        response = TestClient(app).get("/instructions/2fa/GitHub.com")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"data": "Open Settings > Security"}
    assert stub.calls == [(TaskType.TWO_FACTOR_AUTH, "github.com")]


def test_instructions_upstream_failure_is_503():
    app.dependency_overrides[instructions_dependency] = lambda: StubInstructions(error=True)
    try:
        response = TestClient(app).get("/instructions/pw/adobe.com")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503


def test_instructions_not_configured_is_503(monkeypatch):
    def unavailable():
        raise InstructionsServiceError("OPENAI_API_KEY not configured", recoverable=False)

    monkeypatch.setattr("nudge.routes.instructions.get_instructions_service", unavailable)

    response = TestClient(app).get("/instructions/pw/adobe.com")

    assert response.status_code == 503


@pytest.fixture
def unconfigured_client(monkeypatch):
    monkeypatch.setattr("nudge.config.settings.ENCRYPTION_KEY", None, raising=False)
    _default_services.cache_clear()
    yield TestClient(app)
    _default_services.cache_clear()


def test_popup_without_encryption_key_is_204(unconfigured_client):
    response = unconfigured_client.post(
        "/popup", json={"email": "a@x.com", "url": "https://github.com"}
    )

    assert response.status_code == 204


@pytest.mark.parametrize(
    "path, body",
    [
        ("/interaction", {"email": "a@x.com", "taskType": "pw", "domain": "adobe.com"}),
        ("/survey", {"email": "a@x.com", "taskType": "pw", "domain": "adobe.com", "survey": "ok"}),
        ("/email", {"email": "a@x.com", "emails": ["b@y.com"]}),
    ],
)
def test_writes_without_encryption_key_are_400(unconfigured_client, path, body):
    response = unconfigured_client.post(path, json=body)

    assert response.status_code == 400


def test_request_log_uses_route_template(caplog):
    app.dependency_overrides[instructions_dependency] = lambda: StubInstructions()
    caplog.set_level(logging.INFO)
    try:
        response = TestClient(app).get("/instructions/pw/secretbank.com")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert "secretbank.com" not in caplog.text
    http_events = [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "http"
    ]
    assert http_events[-1]["path"] == "/instructions/{task_type}/{domain}"


def test_validation_log_uses_route_template(caplog):
    app.dependency_overrides[instructions_dependency] = lambda: StubInstructions()
    caplog.set_level(logging.INFO)
    try:
        response = TestClient(app).get("/instructions/sms/secretbank.com")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 400
    assert "secretbank.com" not in caplog.text
    assert "/instructions/{task_type}/{domain}" in caplog.text


def test_unmatched_path_is_not_logged_verbatim(caplog):
    caplog.set_level(logging.INFO)

    response = TestClient(app).get("/nowhere/secretbank.com")

    assert response.status_code == 404
    assert "secretbank.com" not in caplog.text
    assert "unmatched" in caplog.text
