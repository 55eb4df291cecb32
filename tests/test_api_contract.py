"""
API contract integration tests.

Uses FastAPI TestClient with faked LINE/OpenAI backends — no running
server or network required.
"""
import base64
import hashlib
import hmac
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import APPLE_JSON, JPEG_BYTES, FakeOpenAI, RecordingTransport, line_handler
from app.analysis_service import AnalysisOrchestrator
from app.clients import Services
from app.dialogflow_service import DialogflowForwarder, WELCOME_TEXT
from app.line_service import LineClient
from app.main import create_app
from app.vision_service import VisionAnalyzer
from app.webhook_service import WebhookRouter


def _build(settings, handler=None):
    transport = RecordingTransport(handler or line_handler())
    http = httpx.AsyncClient(transport=transport)
    line = LineClient(http, settings)
    orchestrator = AnalysisOrchestrator(line, VisionAnalyzer(FakeOpenAI(content=json.dumps(APPLE_JSON))))
    router = WebhookRouter(line, orchestrator, DialogflowForwarder(http, settings))
    services = Services(settings, http, line, orchestrator, router)
    return TestClient(create_app(services=services)), transport


@pytest.fixture
def api(settings):
    client, _ = _build(settings)
    return client


def test_health(api):
    response = api.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_line_webhook_replies_to_image(settings):
    client, transport = _build(settings)
    payload = {
        "destination": "Uxxx",
        "events": [{
            "type": "message",
            "replyToken": "token-1",
            "source": {"userId": "U123", "type": "user"},
            "message": {"type": "image", "id": "msg-1"},
        }],
    }

    response = client.post("/api/v1/line/webhook", json=payload)

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    [body] = transport.posted("/reply")
    assert body["replyToken"] == "token-1"
    assert body["messages"][0]["altText"] == "Food Analysis Results"


def test_line_webhook_empty_verification_call(api):
    response = api.post("/api/v1/line/webhook", json={"destination": "Uxxx", "events": []})
    assert response.status_code == 200


def test_line_webhook_signature(settings):
    settings.line_channel_secret = "s3cret"
    client, transport = _build(settings)
    body = json.dumps({"events": []}).encode()
    signature = base64.b64encode(hmac.new(b"s3cret", body, hashlib.sha256).digest()).decode()

    ok = client.post("/api/v1/line/webhook", content=body, headers={"X-Line-Signature": signature})
    bad = client.post("/api/v1/line/webhook", content=body, headers={"X-Line-Signature": "nope"})

    assert ok.status_code == 200
    assert bad.status_code == 401
    assert bad.json()["error"]["code"] == "INVALID_SIGNATURE"


def test_line_webhook_non_ascii_signature(settings):
    settings.line_channel_secret = "s3cret"
    client, _ = _build(settings)

    response = client.post(
        "/api/v1/line/webhook",
        content=b'{"events": []}',
        headers={"X-Line-Signature": "s\u00efgnature".encode("utf-8")},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_SIGNATURE"


def test_line_webhook_invalid_body(api):
    response = api.post("/api/v1/line/webhook", content=b"not json")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_dialogflow_webhook(api):
    payload = {"queryResult": {"intent": {"displayName": "Default Welcome Intent"}, "parameters": {}}}
    response = api.post("/api/v1/dialogflow/webhook", json=payload)
    assert response.status_code == 200
    assert response.json()["fulfillmentMessages"][0]["text"]["text"] == [WELCOME_TEXT]


def test_analyze_upload(api):
    response = api.post(
        "/api/v1/food/analyze",
        files={"image": ("meal.jpg", JPEG_BYTES, "image/jpeg")},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["analysis"]["containsFood"] is True
    assert data["analysis"]["totalCalories"] == 95
    assert data["message"]["type"] == "flex"


def test_analyze_upload_rejects_non_image(api):
    response = api.post(
        "/api/v1/food/analyze",
        files={"image": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Only image files are allowed"


def test_analyze_upload_without_file(api):
    response = api.post("/api/v1/food/analyze")
    assert response.status_code == 400


def test_analyze_line_message(settings):
    client, transport = _build(settings)
    response = client.post("/api/v1/food/analyze-line", json={"messageId": "msg-1", "userId": "U123"})
    assert response.status_code == 200
    assert response.json()["analysis"]["items"][0]["name"] == "Apple"
    assert transport.posted("/reply") == []


def test_analyze_line_message_not_found(settings):
    client, _ = _build(settings, handler=line_handler(content_status=404))
    response = client.post("/api/v1/food/analyze-line", json={"messageId": "gone"})
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "UPSTREAM_ERROR"


def test_analyze_line_validation_error(api):
    response = api.post("/api/v1/food/analyze-line", json={"userId": "U123"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
