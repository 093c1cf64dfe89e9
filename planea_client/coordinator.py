import logging
from typing import Any, List, Mapping, Optional, Union

from planea_common.schemas import AISettings, Document, Member, Project, Task, TaskStatus, TimeLog

from .ai import AIClient, InsightsTracker
from .planner import build_project_from_plan
from .storage import PersistenceClient
from .stores import AISettingsStore, MemberStore, ProjectStore, TimeLogStore

logger = logging.getLogger(__name__)

DEFAULT_VIEW = "Dashboard"


class AppCoordinator:
    """
    Compone los stores y mantiene las invariantes que cruzan entre ellos.

    No hay rollback: cada store se muta por separado. Si la segunda mutación
    no llega a ocurrir, ambos pueden divergir.
    """

    def __init__(self, client: PersistenceClient, ai: Optional[AIClient] = None):
        self.client = client
        self.projects = ProjectStore(client)
        self.time_logs = TimeLogStore(client)
        self.members = MemberStore(client)
        self.ai_settings = AISettingsStore(client)
        self.ai = ai
        self.insights = InsightsTracker(ai) if ai is not None else None
        self.active_view = DEFAULT_VIEW
        self._backfilled = False

    # --- CICLO DE VIDA ---

    @property
    def is_loading(self) -> bool:
        return not self.projects.is_hydrated

    async def start(self) -> Document:
        """Hidrata todos los stores desde el cliente de persistencia."""
        document = await self.client.load()
        for store in (self.projects, self.time_logs, self.members, self.ai_settings):
            store.hydrate(document)
        self._backfilled = False
        self.run_backfill()
        self.refresh_insights()
        return document

    async def shutdown(self):
        if self.insights is not None:
            self.insights.cancel()
        if self.ai is not None:
            await self.ai.close()
        await self.client.close()

    def run_backfill(self) -> bool:
        """Una vez por hidratación, y solo con proyectos y registros hidratados."""
        if self._backfilled or not (self.projects.is_hydrated and self.time_logs.is_hydrated):
            return False
        self._backfilled = True
        changed = self.time_logs.backfill_stage_ids(self.projects.task_stage_map())
        if changed:
            logger.info("🔧 stageId completado en registros de tiempo antiguos")
        return changed

    # --- PROYECTOS ---

    @property
    def active_project(self) -> Optional[Project]:
        return self.projects.active_project

    def set_active_project(self, project_id: str) -> bool:
        changed = self.projects.set_active_project_id(project_id)
        if changed:
            self.refresh_insights()
        return changed

    def add_project(self, project: Union[Project, Mapping[str, Any]]) -> Optional[Project]:
        created = self.projects.add_project(project)
        if created is not None:
            self.active_view = DEFAULT_VIEW
            self.refresh_insights()
        return created

    def add_project_from_plan(self, plan: Union[Project, Mapping[str, Any]]) -> Optional[Project]:
        created = self.projects.add_project_from_plan(plan)
        if created is not None:
            self.active_view = DEFAULT_VIEW
            self.refresh_insights()
        return created

    def update_project(self, project: Project) -> bool:
        updated = self.projects.update_project(project)
        if updated and project.id == self.projects.active_project_id:
            self.refresh_insights()
        return updated

    def delete_project(self, project_id: str) -> Optional[Project]:
        project = self.projects.get_project(project_id)
        task_ids = [task.id for task in project.tasks if isinstance(task.id, str)] if project is not None else []
        was_active = self.projects.active_project_id == project_id
        removed = self.projects.delete_project(project_id)
        self.time_logs.remove_logs_for_tasks(task_ids)
        if was_active:
            self.refresh_insights()
        return removed

    async def generate_project_plan(self, description: str, unassigned: str = "Unassigned") -> Optional[Project]:
        """
        Pide un plan a la IA y lo materializa como nuevo proyecto activo.

        Devuelve None si la IA está deshabilitada o el plan viene vacío;
        `PlanTimeoutError` se propaga al llamador.
        """
        if self.ai is None or not self.ai_settings.settings.enabled or not description.strip():
            return None
        plan = await self.ai.generate_project_plan(description, self.ai_settings.settings.model)
        if plan is None or not plan.stages:
            return None
        return self.add_project_from_plan(build_project_from_plan(plan, description, unassigned=unassigned))

    # --- TAREAS (proyecto activo) ---

    def _active_changed(self, result):
        # Las sugerencias siguen al contenido del proyecto activo
        if result is not None:
            self.refresh_insights()
        return result

    def add_task(self, data: Union[Task, Mapping[str, Any]]) -> Optional[Task]:
        return self._active_changed(self.projects.add_task(data))

    def update_task(self, task: Task) -> Optional[Task]:
        return self._active_changed(self.projects.update_task(task))

    def update_task_status(self, task_id: str, status: Union[TaskStatus, str]) -> Optional[Task]:
        return self._active_changed(self.projects.update_task_status(task_id, status))

    def delete_task(self, task_id: str) -> Optional[Task]:
        removed = self.projects.delete_task(task_id)
        self.time_logs.remove_logs_for_task(task_id)
        return self._active_changed(removed)

    # --- REGISTROS DE TIEMPO ---

    def add_log(self, data: Union[TimeLog, Mapping[str, Any]]) -> Optional[TimeLog]:
        log = self.time_logs.add_log(data, self.projects.task_stage_map())
        if log is not None:
            self._active_changed(self.projects.add_actual_hours(log.task_id, log.hours))
        return log

    def update_log(self, log_id: str, hours: Optional[float] = None, date: Optional[str] = None) -> Optional[TimeLog]:
        existing = self.time_logs.get_log(log_id)
        if existing is None:
            return None
        previous_hours = existing.hours
        updated = self.time_logs.update_log(log_id, hours=hours, date=date)
        if updated is None:
            return None
        # Se aplica el delta, no el valor absoluto
        delta = updated.hours - previous_hours
        if delta:
            self._active_changed(self.projects.add_actual_hours(updated.task_id, delta))
        return updated

    def delete_log(self, log_id: str) -> Optional[TimeLog]:
        existing = self.time_logs.delete_log(log_id)
        if existing is None:
            return None
        self._active_changed(self.projects.add_actual_hours(existing.task_id, -existing.hours))
        return existing

    # --- EQUIPO ---

    def add_member(self, data: Union[Member, Mapping[str, Any]]) -> Optional[Member]:
        return self.members.add_member(data)

    def update_member(self, member: Member) -> bool:
        return self.members.update_member(member)

    def delete_member(self, member_id: str) -> Optional[Member]:
        return self.members.delete_member(member_id)

    # --- IA ---

    def toggle_ai(self) -> AISettings:
        settings = self.ai_settings.toggle_enabled()
        self.refresh_insights()
        return settings

    def set_model(self, model: str) -> AISettings:
        settings = self.ai_settings.set_model(model)
        self.refresh_insights()
        return settings

    def refresh_insights(self):
        if self.insights is None:
            return None
        return self.insights.refresh(self.active_project, self.ai_settings.settings)

    @property
    def current_insights(self) -> List:
        return self.insights.insights if self.insights is not None else []
