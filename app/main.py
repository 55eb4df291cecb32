import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, UploadFile, File
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.requests import Request
from pydantic import BaseModel

from app.clients import Services, build_services
from app.config import Settings
from app.dialogflow_service import handle_fulfillment
from app.image_handler import ImageValidationError, validate_image
from app.line_service import RetrievalError
from app.webhook_service import verify_signature
from nutrition.models import AnalysisRequest, AnalysisResult

logger = logging.getLogger(__name__)


class LineWebhookBody(BaseModel):
    destination: Optional[str] = None
    events: List[Dict[str, Any]] = []


class AnalyzeLineRequest(BaseModel):
    messageId: str
    userId: Optional[str] = None


class AnalyzeResponse(BaseModel):
    success: bool
    analysis: Dict[str, Any]
    message: Dict[str, Any]


class HealthResponse(BaseModel):
    ok: bool


def _analyze_response(result: AnalysisResult, card: Dict[str, Any]) -> AnalyzeResponse:
    return AnalyzeResponse(success=result.error is None, analysis=result.to_wire(), message=card)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Pass `services` to inject pre-built (e.g. fake) services; otherwise
    they are built from `settings` on startup and closed on shutdown.
    """
    settings = settings or (services.settings if services else Settings.from_env())
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is not None:
            app.state.services = services
            yield
            return
        app.state.services = build_services(settings)
        try:
            yield
        finally:
            await app.state.services.aclose()

    app = FastAPI(title="LINE Food Analysis Bot", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid request payload",
                    "details": exc.errors(),
                }
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        code_map = {
            400: "BAD_REQUEST",
            401: "INVALID_SIGNATURE",
            502: "UPSTREAM_ERROR",
        }
        error_code = code_map.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": error_code,
                    "message": exc.detail,
                }
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                }
            },
        )

    # Audit images are served back as card hero images
    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/v1/health", response_model=HealthResponse)
    def health():
        return {"ok": True}

    @app.post("/webhook")
    @app.post("/api/v1/line/webhook")
    async def line_webhook(request: Request):
        """
        LINE Messaging API webhook.

        Verifies X-Line-Signature when a channel secret is configured,
        then routes every event (image → analysis, text → Dialogflow).
        """
        body = await request.body()
        secret = settings.line_channel_secret
        if secret and not verify_signature(body, request.headers.get("X-Line-Signature"), secret):
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            payload = LineWebhookBody.model_validate(json.loads(body or b"{}"))
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid webhook body")

        await request.app.state.services.router.handle_events(payload.events)
        return {"ok": True}

    @app.post("/api/v1/dialogflow/webhook")
    async def dialogflow_webhook(request: Request):
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid fulfillment body")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Invalid fulfillment body")
        return handle_fulfillment(body)

    @app.post("/api/v1/food/analyze", response_model=AnalyzeResponse)
    async def analyze_upload(request: Request, image: Optional[UploadFile] = File(None)):
        """Analyze a directly uploaded photo (multipart field `image`)."""
        if image is None:
            raise HTTPException(status_code=400, detail="No image file provided")

        content = await image.read()
        try:
            validate_image(content, image.content_type, settings.max_image_size)
        except ImageValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        result, card = await request.app.state.services.orchestrator.analyze_bytes(content)
        return _analyze_response(result, card)

    @app.post("/api/v1/food/analyze-line", response_model=AnalyzeResponse)
    async def analyze_line(body: AnalyzeLineRequest, request: Request):
        """Analyze a photo already sent to the bot, by LINE message id."""
        orchestrator = request.app.state.services.orchestrator
        try:
            result, card = await orchestrator.fetch_and_analyze(
                AnalysisRequest(content_id=body.messageId, user_id=body.userId)
            )
        except RetrievalError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return _analyze_response(result, card)

    return app


app = create_app()
