"""
Shared fixtures: settings on a temp dir, a fake OpenAI client and a
recording httpx transport standing in for the LINE / Dialogflow APIs.
"""
import asyncio
import json
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import httpx
import pytest

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import Settings


APPLE_JSON = {
    "containsFood": True,
    "items": [{"name": "Apple", "calories": 95, "protein": 0, "carbs": 25, "fat": 0}],
    "totalCalories": 95,
    "totalProtein": 0,
    "totalCarbs": 25,
    "totalFat": 0,
    "healthierAlternatives": "None needed",
}

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


class FakeCompletions:
    """Stands in for client.chat.completions; records every call."""

    def __init__(
        self,
        content: Optional[str] = None,
        error: Optional[Exception] = None,
        choices: bool = True,
        delay: float = 0,
    ):
        self.content = content
        self.delay = delay
        self.error = error
        self.choices = choices
        self.calls: List[Dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if not self.choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    def __init__(self, **kwargs):
        self.completions = FakeCompletions(**kwargs)
        self.chat = SimpleNamespace(completions=self.completions)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps the requests it saw."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def posted(self, path_suffix: str) -> List[dict]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == "POST" and r.url.path.endswith(path_suffix)
        ]


def line_handler(content_status: int = 200, reply_status: int = 200, image: bytes = JPEG_BYTES):
    """Build a handler that fakes the LINE content and messaging endpoints."""
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/content"):
            if content_status != 200:
                return httpx.Response(content_status, json={"message": "Not found"})
            return httpx.Response(200, content=image, headers={"Content-Type": "image/jpeg"})
        if request.url.path.endswith(("/reply", "/push")):
            return httpx.Response(reply_status, json={})
        return httpx.Response(200, json={})
    return handler


@pytest.fixture
def settings(tmp_path):
    return Settings(
        line_channel_access_token="test-token",
        dialogflow_agent_id="agent-123",
        openai_api_key="sk-test",
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="https://bot.example.com",
    )


@pytest.fixture
def apple_json():
    return json.loads(json.dumps(APPLE_JSON))
