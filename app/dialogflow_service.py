"""
Dialogflow integration.

Two directions:
- forward_text(): hand a LINE text message to the Dialogflow LINE
  integration, which answers the user itself.
- handle_fulfillment(): answer Dialogflow's fulfillment webhook for the
  bot's intents.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config import Settings
from app.errors import BotError

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Hello! I can analyze your food photos and provide nutritional information. "
    "Send me a picture of your food or ask me about nutrition!"
)
ANALYZE_TEXT = "Please send me a photo of your food to analyze!"
ASK_FOOD_ITEM_TEXT = "Which food item would you like nutritional information for?"
DEFAULT_TEXT = (
    "I'm here to help with food analysis and nutrition information. "
    "Send me a food photo to analyze or ask me about specific foods!"
)
ERROR_TEXT = "I'm sorry, I encountered an error processing your request. Please try again later."


class NluError(BotError):
    """Raised when forwarding to Dialogflow fails."""
    pass


class DialogflowForwarder:
    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self._http = http
        self._settings = settings

    @property
    def webhook_url(self) -> Optional[str]:
        agent_id = self._settings.dialogflow_agent_id
        if not agent_id:
            return None
        return f"{self._settings.dialogflow_webhook_base}/{agent_id}/webhook"

    async def forward_text(self, reply_token: str, text: str) -> None:
        """
        Forward a text message to the Dialogflow agent.

        Raises:
            NluError: if no agent is configured or the call fails
        """
        url = self.webhook_url
        if url is None:
            raise NluError("DIALOGFLOW_AGENT_ID is not configured")

        logger.info("[NLU] Forwarding to Dialogflow agent: %s", self._settings.dialogflow_agent_id)
        payload = {"events": [{"replyToken": reply_token, "message": {"text": text}}]}
        try:
            response = await self._http.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NluError(f"Dialogflow forward failed: {e}") from e


# ── Fulfillment webhook ───────────────────────────────────────────────

def format_response(text: str, line_messages: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Dialogflow fulfillment response with optional LINE payload messages."""
    fulfillment_messages: List[Dict[str, Any]] = [
        {"platform": "PLATFORM_UNSPECIFIED", "text": {"text": [text]}}
    ]
    for message in line_messages or []:
        fulfillment_messages.append({"platform": "line", "payload": {"line": message}})
    return {"fulfillmentMessages": fulfillment_messages}


def _answer_intent(intent: str, parameters: Dict[str, Any]) -> str:
    if intent == "Default Welcome Intent":
        return WELCOME_TEXT

    if intent == "food.analyze":
        return ANALYZE_TEXT

    if intent == "nutrition.info":
        food_item = parameters.get("food_item") or ""
        if not food_item:
            return ASK_FOOD_ITEM_TEXT
        return (
            f"{food_item} is generally a nutritious option. For detailed nutritional information, "
            f"send me a photo of your {food_item} and I'll analyze it for you!"
        )

    return DEFAULT_TEXT


def handle_fulfillment(request: Dict[str, Any]) -> Dict[str, Any]:
    """Answer a Dialogflow fulfillment request. Never raises."""
    try:
        query_result = request.get("queryResult") or {}
        intent = (query_result.get("intent") or {}).get("displayName") or ""
        parameters = query_result.get("parameters") or {}
        logger.info("[NLU] Fulfillment request intent=%r action=%r", intent, query_result.get("action"))
        return format_response(_answer_intent(intent, parameters))
    except (AttributeError, TypeError) as e:
        logger.error("[NLU] Malformed fulfillment request: %s", e)
        return format_response(ERROR_TEXT)
