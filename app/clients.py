"""
Client wiring for the app.

Builds the shared HTTP/OpenAI clients and the services on top of them
from one Settings object:
    services = build_services(Settings.from_env())
"""
from typing import Optional

import httpx
from openai import AsyncOpenAI

from app.analysis_service import AnalysisOrchestrator
from app.config import Settings
from app.dialogflow_service import DialogflowForwarder
from app.line_service import LineClient
from app.storage_service import AuditStore
from app.vision_service import VisionAnalyzer
from app.webhook_service import WebhookRouter


class Services:
    """Everything a request handler needs, built once at startup."""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient,
        line: LineClient,
        orchestrator: AnalysisOrchestrator,
        router: WebhookRouter,
        openai_client: Optional[AsyncOpenAI] = None,
    ):
        self.settings = settings
        self.http = http
        self.line = line
        self.orchestrator = orchestrator
        self.router = router
        self.openai_client = openai_client

    async def aclose(self) -> None:
        await self.orchestrator.drain()
        await self.http.aclose()
        if self.openai_client is not None:
            await self.openai_client.close()


def build_services(settings: Settings) -> Services:
    http = httpx.AsyncClient(timeout=settings.http_timeout)
    openai_client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.http_timeout)

    line = LineClient(http, settings)
    analyzer = VisionAnalyzer(
        openai_client,
        model=settings.openai_model,
        max_tokens=settings.vision_max_tokens,
        temperature=settings.vision_temperature,
    )
    orchestrator = AnalysisOrchestrator(
        line,
        analyzer,
        AuditStore(settings.upload_dir, settings.public_base_url),
    )
    router = WebhookRouter(line, orchestrator, DialogflowForwarder(http, settings))

    return Services(settings, http, line, orchestrator, router, openai_client)
