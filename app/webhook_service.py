"""
LINE webhook event routing.

Classifies inbound events and hands them to the right service:
image messages go to the analysis pipeline, text goes to Dialogflow
(except the "analyze food" instruction), anything else gets a help text.
"""
import asyncio
import base64
import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

from app.analysis_service import AnalysisOrchestrator
from app.dialogflow_service import DialogflowForwarder
from app.errors import BotError
from app.line_service import LineClient
from nutrition.flex import create_text_message
from nutrition.models import AnalysisRequest

logger = logging.getLogger(__name__)

PHOTO_PROMPT_TEXT = "Please send me a photo of your food, and I'll analyze it for you!"
HELP_TEXT = "I can analyze food photos or answer nutrition questions. Please send me a photo or ask a question."


def verify_signature(body: bytes, signature: Optional[str], channel_secret: str) -> bool:
    """Check X-Line-Signature: base64(HMAC-SHA256(channel secret, body))."""
    if not signature:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest)
    # compare_digest rejects non-ASCII str, so compare bytes
    return hmac.compare_digest(expected, signature.encode("utf-8", "replace"))


def is_analyze_request(text: str) -> bool:
    lower = text.lower()
    return "analyze" in lower and "food" in lower


class WebhookRouter:
    def __init__(
        self,
        line: LineClient,
        orchestrator: AnalysisOrchestrator,
        nlu: DialogflowForwarder,
    ):
        self._line = line
        self._orchestrator = orchestrator
        self._nlu = nlu

    async def handle_events(self, events: List[Dict[str, Any]]) -> None:
        """Handle all events of one delivery concurrently; one failure never affects the others."""
        results = await asyncio.gather(
            *(self.handle_event(event) for event in events),
            return_exceptions=True,
        )
        for event, result in zip(events, results):
            if isinstance(result, Exception):
                logger.error("[WEBHOOK] Event %s failed: %s", event.get("type"), result)

    async def handle_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        source = event.get("source") or {}
        logger.info(
            "[WEBHOOK] Processing %s event from %s %s",
            event_type, source.get("type"), source.get("userId") or "unknown",
        )

        # Only message events are handled (follow/unfollow/postback are ignored)
        if event_type != "message":
            return

        message = event.get("message") or {}
        reply_token = event.get("replyToken")
        message_type = message.get("type")

        if message_type == "image":
            await self._orchestrator.handle_image(AnalysisRequest(
                content_id=message["id"],
                user_id=source.get("userId"),
                reply_token=reply_token,
            ))
        elif message_type == "text":
            await self.handle_text(message.get("text") or "", reply_token)
        else:
            await self._line.reply(reply_token, create_text_message(HELP_TEXT))

    async def handle_text(self, text: str, reply_token: str) -> None:
        if is_analyze_request(text):
            await self._line.reply(reply_token, create_text_message(PHOTO_PROMPT_TEXT))
            return

        try:
            await self._nlu.forward_text(reply_token, text)
        except BotError as e:
            logger.error("[WEBHOOK] NLU forwarding failed: %s", e)
            await self._line.reply(reply_token, create_text_message(HELP_TEXT))
