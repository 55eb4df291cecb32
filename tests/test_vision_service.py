"""
Tests for VisionAnalyzer with a fake OpenAI client.

Usage:
  pytest tests/test_vision_service.py -v
"""
import base64
import json

import httpx
import openai
import pytest

from conftest import APPLE_JSON, JPEG_BYTES, FakeOpenAI
from app.image_handler import detect_mime_type, to_data_uri
from app.vision_service import VisionAnalyzer
from nutrition.models import AnalysisResult
from nutrition.prompts import FOOD_ANALYSIS_PROMPT

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _timeout() -> Exception:
    return openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


class TestImageEncoding:

    def test_jpeg_data_uri(self):
        uri = to_data_uri(JPEG_BYTES)
        assert uri.startswith("data:image/jpeg;base64,")
        assert base64.b64decode(uri.split(",", 1)[1]) == JPEG_BYTES

    def test_png_is_detected(self):
        assert detect_mime_type(PNG_BYTES) == "image/png"
        assert to_data_uri(PNG_BYTES).startswith("data:image/png;base64,")

    def test_unknown_bytes_default_to_jpeg(self):
        assert detect_mime_type(b"hello") is None
        assert to_data_uri(b"hello").startswith("data:image/jpeg;base64,")


class TestRequestShape:

    @pytest.mark.asyncio
    async def test_single_user_turn_with_prompt_and_image(self):
        client = FakeOpenAI(content=json.dumps(APPLE_JSON))
        analyzer = VisionAnalyzer(client, model="gpt-4o-mini", max_tokens=1000, temperature=0.2)

        await analyzer.analyze(JPEG_BYTES)

        call = client.completions.calls[0]
        assert call["model"] == "gpt-4o-mini"
        assert call["max_tokens"] == 1000
        assert call["temperature"] <= 0.3
        [turn] = call["messages"]
        assert turn["role"] == "user"
        text_part, image_part = turn["content"]
        assert text_part == {"type": "text", "text": FOOD_ANALYSIS_PROMPT}
        assert image_part["type"] == "image_url"
        assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")

    def test_prompt_states_both_shapes_and_markers(self):
        assert '"containsFood": true' in FOOD_ANALYSIS_PROMPT
        assert '"containsFood": false' in FOOD_ANALYSIS_PROMPT
        assert "<JSON_START>" in FOOD_ANALYSIS_PROMPT and "<JSON_END>" in FOOD_ANALYSIS_PROMPT
        assert "ONLY" in FOOD_ANALYSIS_PROMPT


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_delimited_response(self):
        content = f"<JSON_START>{json.dumps(APPLE_JSON)}<JSON_END>"
        result = await VisionAnalyzer(FakeOpenAI(content=content)).analyze(JPEG_BYTES)
        assert result.contains_food
        assert result.items[0].name == "Apple"
        assert result.total_calories == 95

    @pytest.mark.asyncio
    async def test_nested_data_response(self):
        content = json.dumps({"data": APPLE_JSON})
        result = await VisionAnalyzer(FakeOpenAI(content=content)).analyze(JPEG_BYTES)
        assert result.contains_food

    @pytest.mark.asyncio
    async def test_prose_response_degrades(self):
        result = await VisionAnalyzer(FakeOpenAI(content="That looks tasty!")).analyze(JPEG_BYTES)
        assert result == AnalysisResult.no_food()

    @pytest.mark.asyncio
    async def test_none_content_degrades(self):
        result = await VisionAnalyzer(FakeOpenAI(content=None)).analyze(JPEG_BYTES)
        assert result.contains_food is False

    @pytest.mark.asyncio
    async def test_no_choices_degrades(self):
        result = await VisionAnalyzer(FakeOpenAI(choices=False)).analyze(JPEG_BYTES)
        assert result.contains_food is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        _timeout(),
        openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")),
        RuntimeError("unexpected"),
    ])
    async def test_api_failures_never_raise(self, error):
        result = await VisionAnalyzer(FakeOpenAI(error=error)).analyze(JPEG_BYTES)
        assert result == AnalysisResult.no_food()
