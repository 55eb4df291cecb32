"""
LINE Messaging API client.

Content retrieval (image bytes for a message id) and reply/push
dispatch. One attempt per call, no retries.
"""
import logging
from typing import Any, Dict, List, Union

import httpx

from app.config import Settings
from app.errors import BotError

logger = logging.getLogger(__name__)

Messages = Union[Dict[str, Any], List[Dict[str, Any]]]


class RetrievalError(BotError):
    """Raised when message content cannot be fetched from LINE."""
    pass


class DispatchError(BotError):
    """Raised when a reply or push call to LINE fails."""
    pass


def _as_list(messages: Messages) -> List[Dict[str, Any]]:
    return messages if isinstance(messages, list) else [messages]


class LineClient:
    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self._http = http
        self._settings = settings

    def content_url(self, message_id: str) -> str:
        return f"{self._settings.line_content_api}/{message_id}/content"

    async def get_content(self, message_id: str) -> bytes:
        """
        Download the binary content of a message (e.g. an image).

        Raises:
            RetrievalError: on transport failure or non-success status
        """
        logger.info("[FETCH] Retrieving content for message %s", message_id)
        try:
            response = await self._http.get(
                self.content_url(message_id),
                headers=self._settings.line_auth_headers,
            )
        except httpx.HTTPError as e:
            logger.error("[FETCH] Transport error for message %s: %s", message_id, e)
            raise RetrievalError(f"Could not retrieve content {message_id}: {e}") from e

        if response.status_code != 200:
            logger.error("[FETCH] Failed to get content %s. Status: %s", message_id, response.status_code)
            raise RetrievalError(f"Content API returned {response.status_code} for {message_id}")

        logger.info("[FETCH] Retrieved content %s - Size: %d bytes", message_id, len(response.content))
        return response.content

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> httpx.Response:
        try:
            response = await self._http.post(
                f"{self._settings.line_messaging_api}/{endpoint}",
                json=payload,
                headers=self._settings.line_auth_headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("[DISPATCH] %s call failed: %s", endpoint, e)
            raise DispatchError(f"LINE {endpoint} failed: {e}") from e
        return response

    async def reply(self, reply_token: str, messages: Messages) -> httpx.Response:
        """
        Reply to an event with one or more messages.

        Raises:
            DispatchError: if the call fails
        """
        message_list = _as_list(messages)
        logger.info("[DISPATCH] Sending %d message(s) to replyToken %s", len(message_list), reply_token)
        return await self._post("reply", {"replyToken": reply_token, "messages": message_list})

    async def push(self, user_id: str, messages: Messages) -> httpx.Response:
        """
        Push one or more messages to a user.

        Raises:
            DispatchError: if the call fails
        """
        message_list = _as_list(messages)
        logger.info("[DISPATCH] Pushing %d message(s) to user %s", len(message_list), user_id)
        return await self._post("push", {"to": user_id, "messages": message_list})
