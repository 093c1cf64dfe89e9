import asyncio
import logging
from typing import Any, List, Optional

import httpx

from planea_common.normalize import filter_valid
from planea_common.schemas import AISettings, Insight, PlanStage, PlanResult, PlanTask, Project

from .storage import DEFAULT_API_URL

logger = logging.getLogger(__name__)

CLIENT_TIMEOUT_SECONDS = 35.0


class PlanTimeoutError(Exception):
    """La generación del plan excedió el tiempo límite. No se reintenta."""


def _parse_plan(data: Any) -> Optional[PlanResult]:
    if not isinstance(data, dict) or not isinstance(data.get("stages"), list):
        return None
    stages = []
    for raw_stage in data["stages"]:
        if not isinstance(raw_stage, dict):
            continue
        if not isinstance(raw_stage.get("name"), str) or not isinstance(raw_stage.get("tasks"), list):
            continue
        stages.append(PlanStage(name=raw_stage["name"], tasks=filter_valid(PlanTask, raw_stage["tasks"])))
    return PlanResult(stages=stages)


class AIClient:
    """Cliente de los endpoints `/ai/*` del servicio de datos."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = CLIENT_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None
        self.timeout = timeout

    async def _post(self, path: str, body: dict) -> Optional[Any]:
        response = await self._http.post(f"{self.base_url}{path}", json=body, timeout=self.timeout)
        if response.status_code == 504:
            raise httpx.TimeoutException("AI request timed out")
        if not response.is_success:
            return None
        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("ok"):
            return None
        return payload.get("data")

    async def generate_project_plan(self, description: str, model: str) -> Optional[PlanResult]:
        """
        Plan de etapas y tareas, o None si falla. Un timeout se reporta como
        `PlanTimeoutError` para que el llamador lo distinga.
        """
        try:
            data = await self._post("/ai/generate-plan", {"description": description, "model": model})
        except httpx.TimeoutException as e:
            raise PlanTimeoutError(str(e)) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ Error generando plan: {e}")
            return None
        return _parse_plan(data)

    async def get_project_insights(self, project: Project, model: str) -> List[Insight]:
        """Sugerencias del proyecto. Cualquier fallo equivale a lista vacía."""
        try:
            data = await self._post("/ai/insights", {"projectData": project.to_wire(), "model": model})
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Sin sugerencias: {e}")
            return []
        if not isinstance(data, list):
            return []
        return filter_valid(Insight, data)

    async def close(self):
        """Libera el cliente HTTP solo si lo creó esta instancia."""
        if self._owns_http:
            await self._http.aclose()


class InsightsTracker:
    """
    Consulta de sugerencias ligada al proyecto activo.

    Cada `refresh` cancela la consulta anterior; un resultado que llega para
    una consulta ya reemplazada se descarta.
    """

    def __init__(self, api: AIClient):
        self.api = api
        self.insights: List[Insight] = []
        self.is_loading = False
        self._task: Optional[asyncio.Task] = None

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.is_loading = False

    def refresh(self, project: Optional[Project], settings: AISettings) -> Optional[asyncio.Task]:
        self.cancel()
        if not settings.enabled or project is None or not project.tasks:
            self.insights = []
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return None

        self.is_loading = True
        snapshot = project.model_copy(deep=True)
        self._task = asyncio.ensure_future(self._fetch(snapshot, settings.model))
        return self._task

    async def _fetch(self, project: Project, model: str):
        insights = await self.api.get_project_insights(project, model)
        if asyncio.current_task() is not self._task:
            return
        self.insights = insights
        self.is_loading = False
