"""
Food photo analysis pipeline.

Flow for one image message:
  fetch content → start audit upload (background, best effort)
  → vision analysis → render Flex card → reply/push

Only fetching and dispatching can fail the run; analysis and rendering
degrade into an error card instead.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set, Tuple

from app.line_service import LineClient, RetrievalError, DispatchError, Messages
from app.storage_service import AuditStore
from app.vision_service import VisionAnalyzer
from nutrition.flex import RenderError, create_error_flex, create_text_message, render_result
from nutrition.models import AnalysisRequest, AnalysisResult, OrchestrationOutcome, PipelineState

logger = logging.getLogger(__name__)

FETCH_ERROR_TITLE = "Image Error"
FETCH_ERROR_MESSAGE = "I couldn't retrieve your photo. Please try sending it again."
FALLBACK_TEXT = "Sorry, I couldn't prepare your food analysis. Please try again later."


class AnalysisOrchestrator:
    def __init__(
        self,
        line: LineClient,
        analyzer: VisionAnalyzer,
        audit_store: Optional[AuditStore] = None,
    ):
        self._line = line
        self._analyzer = analyzer
        self._audit_store = audit_store
        self._pending: Set[asyncio.Task] = set()

    # ── Helpers ───────────────────────────────────────────────────────

    async def _audit(self, image: bytes, user_id: Optional[str]) -> Optional[str]:
        """Audit upload wrapper: logs and swallows every failure."""
        try:
            return await self._audit_store.upload(image, user_id)
        except Exception as e:
            logger.warning("[AUDIT] Upload failed (non-fatal): %s", e)
            return None

    def _start_audit(self, image: bytes, user_id: Optional[str]) -> Optional[asyncio.Task]:
        # Anonymous direct uploads are not stored.
        if self._audit_store is None or user_id is None:
            return None
        task = asyncio.create_task(self._audit(image, user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @staticmethod
    def _finished_url(task: Optional[asyncio.Task]) -> Optional[str]:
        """Hero image URL if the audit upload already finished; never waits."""
        if task is None or not task.done() or task.cancelled():
            return None
        return task.result()

    async def _send(self, request: AnalysisRequest, messages: Messages) -> None:
        if request.reply_token:
            await self._line.reply(request.reply_token, messages)
        elif request.user_id:
            await self._line.push(request.user_id, messages)
        else:
            raise DispatchError("No reply token or user id to send to")

    @staticmethod
    def _render(result: AnalysisResult, image_url: Optional[str]) -> Dict[str, Any]:
        try:
            return render_result(result, image_url)
        except RenderError:
            logger.exception("[RENDER] Could not render analysis result")
            return create_text_message(FALLBACK_TEXT)

    # ── Public API ────────────────────────────────────────────────────

    async def analyze_bytes(self, image: bytes, user_id: Optional[str] = None) -> Tuple[AnalysisResult, Dict[str, Any]]:
        """Analyze + render without LINE dispatch (direct upload API)."""
        audit_task = self._start_audit(image, user_id)
        result = await self._analyzer.analyze(image)
        return result, self._render(result, self._finished_url(audit_task))

    async def fetch_and_analyze(self, request: AnalysisRequest) -> Tuple[AnalysisResult, Dict[str, Any]]:
        """
        Fetch from LINE, analyze and render without dispatching.

        Raises:
            RetrievalError: if the content cannot be fetched
        """
        image = await self._line.get_content(request.content_id)
        return await self.analyze_bytes(image, request.user_id)

    async def handle_image(self, request: AnalysisRequest) -> OrchestrationOutcome:
        """
        Run the full pipeline for one image message. Never raises for
        fetch or dispatch failures; the outcome records where it stopped.
        """
        logger.info("[PIPELINE] %s: content=%s user=%s", PipelineState.FETCHING.value, request.content_id, request.user_id)
        try:
            request.image = await self._line.get_content(request.content_id)
        except RetrievalError as e:
            logger.error("[PIPELINE] Fetch failed: %s", e)
            try:
                await self._send(request, create_error_flex(FETCH_ERROR_TITLE, FETCH_ERROR_MESSAGE))
            except DispatchError as dispatch_error:
                logger.error("[PIPELINE] Could not report fetch failure: %s", dispatch_error)
            return OrchestrationOutcome(state=PipelineState.FAILED, failed_stage=PipelineState.FETCHING)

        audit_task = self._start_audit(request.image, request.user_id)

        logger.info("[PIPELINE] %s", PipelineState.ANALYZING.value)
        result = await self._analyzer.analyze(request.image)
        request.image = None

        logger.info("[PIPELINE] %s", PipelineState.RENDERING.value)
        card = self._render(result, self._finished_url(audit_task))

        logger.info("[PIPELINE] %s", PipelineState.DISPATCHING.value)
        try:
            await self._send(request, card)
        except DispatchError as e:
            logger.error("[PIPELINE] Dispatch failed, giving up: %s", e)
            return OrchestrationOutcome(
                state=PipelineState.FAILED,
                failed_stage=PipelineState.DISPATCHING,
                result=result,
            )

        return OrchestrationOutcome(state=PipelineState.DONE, result=result)

    async def drain(self) -> None:
        """Wait for audit uploads still in flight (shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
