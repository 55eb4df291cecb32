"""
Vision API integration for food photo analysis.
Uses an OpenAI vision model to itemize food and estimate nutrition.
"""
import logging
from typing import Any, Dict, List

from openai import AsyncOpenAI

from app.image_handler import to_data_uri
from nutrition.models import AnalysisResult
from nutrition.parser import parse_analysis
from nutrition.prompts import FOOD_ANALYSIS_PROMPT

logger = logging.getLogger(__name__)


class VisionAnalyzer:
    """
    Submits a photo plus the fixed analysis prompt and parses the reply.

    analyze() never raises: transport, API and parse failures all come
    back as AnalysisResult(containsFood=False).
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1000,
        temperature: float = 0.2,
    ):
        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    @staticmethod
    def build_messages(image: bytes) -> List[Dict[str, Any]]:
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": FOOD_ANALYSIS_PROMPT},
                    {"type": "image_url", "image_url": {"url": to_data_uri(image)}},
                ],
            }
        ]

    async def analyze(self, image: bytes) -> AnalysisResult:
        logger.info("[VISION] Analyzing food image (%d bytes) with %s", len(image), self._model)

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=self.build_messages(image),
                max_tokens=self._max_tokens,
                temperature=self._temperature,  # structured extraction, keep it deterministic
            )
        except Exception as e:
            logger.error("[VISION] Request failed: %s: %s", type(e).__name__, e)
            return AnalysisResult.no_food()

        if not response.choices:
            logger.error("[VISION] Response had no choices")
            return AnalysisResult.no_food()

        content = response.choices[0].message.content or ""
        logger.info("[VISION] Response received (first 100 chars): %s", content[:100])

        parsed = parse_analysis(content)
        if not parsed.ok:
            logger.warning("[VISION] Unusable model output: %s", parsed.reason)
        return parsed.result
