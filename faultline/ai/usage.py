"""
AI usage recorder - token and latency telemetry sent to the main app.

Recording is best-effort: any failure is logged and dropped.
"""

import logging
import math
from typing import Optional

import httpx

from faultline.core.config import settings
from faultline.domain import UsageRecord
from faultline.stores.projects import SqlProjectDirectory

logger = logging.getLogger(__name__)

APP_NAME = "monitoring"


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


class UsageRecorder:
    """POSTs one UsageRecord per AI call to {main_app_api_url}/ai-usage/record."""

    def __init__(
        self,
        projects: SqlProjectDirectory,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ):
        self.projects = projects
        self.base_url = (base_url if base_url is not None else settings.main_app_api_url).rstrip("/")
        self.token = token if token is not None else settings.main_app_api_token
        self.provider = provider or settings.ai_provider
        self.model = model or settings.ai_default_model
        self._client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def record(self, usage: UsageRecord) -> None:
        if not self.enabled:
            return
        try:
            project = await self.projects.get(usage.project_id)
            if project is None:
                logger.warning("Project %s not found for AI usage tracking", usage.project_id)
                return
            if not project.organization_id:
                logger.debug("Skipping AI usage tracking - no organization ID")
                return

            headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
            response = await self._client.post(
                f"{self.base_url}/ai-usage/record",
                headers=headers,
                json={
                    "companyId": project.organization_id,
                    "projectId": usage.project_id,
                    "appName": APP_NAME,
                    "provider": self.provider,
                    "model": self.model,
                    "operation": usage.operation,
                    "promptTokens": usage.prompt_tokens,
                    "completionTokens": usage.completion_tokens,
                    "latencyMs": usage.latency_ms,
                    "success": usage.success,
                    "errorMessage": usage.error_message,
                    "feature": usage.feature,
                    "metadata": {"projectName": project.name, **usage.metadata},
                },
            )
            response.raise_for_status()
        except Exception as e:
            logger.error("❌ Failed to track AI usage: %s", e)

    async def aclose(self) -> None:
        await self._client.aclose()
