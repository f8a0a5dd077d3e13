import json

import httpx
from fastapi.testclient import TestClient

from forge_gateway import client as client_module
from forge_gateway.app import create_app
from forge_gateway.errors import InvalidStatusCodeError, ResponseContentError, RetryableError
from forge_gateway.models import ChatCompletionMessage, Model
from forge_gateway.services.gateway import GatewayService
from forge_gateway.settings import Settings


def _client(tmp_path, environ=None) -> TestClient:  # noqa: ANN001
    settings = Settings(
        workflow_path=tmp_path / "forge.yaml",
        app_config_path=tmp_path / ".config.json",
    )
    app = create_app(settings=settings, environ=environ if environ is not None else {"OPENAI_API_KEY": "sk"})
    return TestClient(app)


def _chat_payload() -> dict:
    return {
        "model": "gpt-4o",
        "context": {"messages": [{"role": "user", "content": "ping"}]},
    }


def test_healthz(tmp_path):
    response = _client(tmp_path).get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["providers"] == ["openai"]


def test_chat_streams_messages_and_error_items(tmp_path, monkeypatch):
    captured: dict = {}

    async def fake_chat(self, model, context, provider):  # noqa: ANN001
        captured["model"] = model
        captured["provider"] = provider.id

        async def _stream():
            yield ChatCompletionMessage(content="pong")
            yield ResponseContentError("Failed to parse provider response: {", payload="{")

        return _stream()

    monkeypatch.setattr(GatewayService, "chat", fake_chat)

    with _client(tmp_path).stream("POST", "/v1/chat", json=_chat_payload()) as response:
        body = "".join(list(response.iter_text()))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [chunk.strip() for chunk in body.split("\n\n") if chunk.strip()]
    assert events[0].startswith("event: message")
    assert '"content":"pong"' in events[0]
    assert events[1].startswith("event: error")
    assert "invalid_upstream_content" in events[1]
    assert events[2].startswith("event: done")
    assert captured == {"model": "gpt-4o", "provider": "openai"}


def test_chat_error_mapping(tmp_path, monkeypatch):
    async def fake_chat(self, model, context, provider):  # noqa: ANN001
        raise RetryableError(
            InvalidStatusCodeError("rate limited", status_code=429, provider_request_id="req_123")
        )

    monkeypatch.setattr(GatewayService, "chat", fake_chat)

    response = _client(tmp_path).post("/v1/chat", json=_chat_payload())

    assert response.status_code == 429
    error = response.json()["detail"]["error"]
    assert error["code"] == "upstream_rate_limited"
    assert error["retryable"] is True
    assert error["provider_request_id"] == "req_123"


def test_chat_rejects_empty_context(tmp_path):
    payload = {"model": "gpt-4o", "context": {"messages": []}}

    response = _client(tmp_path).post("/v1/chat", json=payload)

    assert response.status_code == 422


def test_models_without_provider_is_failed_dependency(tmp_path):
    response = _client(tmp_path, environ={}).get("/v1/models")

    assert response.status_code == 424
    assert response.json()["detail"]["error"]["code"] == "provider_not_configured"


def test_models_lists_catalog(tmp_path, monkeypatch):
    async def fake_models(self, provider):  # noqa: ANN001
        return [Model(id="gpt-4o", context_length=128000)]

    monkeypatch.setattr(GatewayService, "models", fake_models)

    response = _client(tmp_path).get("/v1/models")

    assert response.status_code == 200
    assert response.json()["provider"] == "openai"
    assert response.json()["models"][0]["id"] == "gpt-4o"


def test_switch_provider(tmp_path, monkeypatch):
    switched: list[str] = []

    async def fake_update(self, provider):  # noqa: ANN001
        switched.append(provider.id)

    monkeypatch.setattr(GatewayService, "update_provider", fake_update)
    client = _client(tmp_path, environ={"OPENAI_API_KEY": "sk", "ANTHROPIC_API_KEY": "sk-a"})

    response = client.put("/v1/provider", json={"provider_id": "anthropic"})
    unknown = client.put("/v1/provider", json={"provider_id": "nope"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "provider": "anthropic"}
    assert switched == ["anthropic"]
    assert unknown.status_code == 424


def test_chat_reports_backend_auth_failure(tmp_path, monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            401, json={"error": {"message": "bad key", "type": "invalid_request_error"}}
        )

    monkeypatch.setattr(
        client_module,
        "build_http_client",
        lambda config: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    with _client(tmp_path).stream("POST", "/v1/chat", json=_chat_payload()) as response:
        body = "".join(list(response.iter_text()))

    events = [chunk.strip() for chunk in body.split("\n\n") if chunk.strip()]
    assert events[0].startswith("event: error")
    error = json.loads(events[0].split("data: ", 1)[1])["error"]
    assert error["code"] == "upstream_auth_error"
    assert error["upstream_status"] == 401
    assert error["retryable"] is False
    assert events[1].startswith("event: done")
