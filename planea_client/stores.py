import logging
import uuid
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from planea_common.schemas import (
    AISettings,
    Document,
    Member,
    Project,
    Task,
    TaskStatus,
    TimeLog,
)

from .storage import PersistenceClient

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _wire_dict(data: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
    """Acepta modelos o dicts con claves snake_case / camelCase."""
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, mode="json", exclude_none=True)
    return {(to_camel(key) if "_" in key else key): value for key, value in data.items()}


def _build(model: Type[M], raw: Dict[str, Any]) -> Optional[M]:
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"⚠️ {model.__name__} inválido, se ignora: {e.error_count()} errores")
        return None


def hours_value(value: Any) -> float:
    """Horas utilizables en aritmética; un valor malformado cuenta como 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return max(0.0, float(value))


def dates_in_order(start: str, end: str) -> bool:
    """start <= end. Fechas vacías o ilegibles no se consideran violación."""
    try:
        return date.fromisoformat(start) <= date.fromisoformat(end)
    except (TypeError, ValueError):
        return True


class BaseStore:
    """Porción del documento en memoria; persiste vía el cliente una vez hidratada."""

    def __init__(self, client: PersistenceClient):
        self._client = client
        self.is_hydrated = False

    def hydrate(self, document: Document):
        raise NotImplementedError

    def snapshot(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _persist(self):
        # Antes de hidratar no se escribe: pisaría el documento del servidor
        if self.is_hydrated:
            self._client.save(self.snapshot())


# --- PROYECTOS Y TAREAS ---

class ProjectStore(BaseStore):
    """
    Proyectos y sus tareas.

    Las operaciones de tareas siempre se resuelven contra el proyecto activo;
    sin proyecto activo no hacen nada y devuelven None.
    """

    def __init__(self, client: PersistenceClient):
        super().__init__(client)
        document = client.get_data()
        self.projects: List[Project] = [p.model_copy(deep=True) for p in document.projects]
        self.active_project_id: str = document.active_project_id

    def hydrate(self, document: Document):
        self.projects = [p.model_copy(deep=True) for p in document.projects]
        self.active_project_id = document.active_project_id or (self.projects[0].id if self.projects else "")
        self.is_hydrated = True

    def snapshot(self) -> Dict[str, Any]:
        return {
            "projects": [p.to_wire() for p in self.projects],
            "activeProjectId": self.active_project_id,
        }

    def get_project(self, project_id: str) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    @property
    def active_project(self) -> Optional[Project]:
        """Proyecto activo, o el primero si el id activo no resuelve."""
        project = self.get_project(self.active_project_id)
        if project is None and self.projects:
            return self.projects[0]
        return project

    def _scoped_project(self) -> Optional[Project]:
        if not self.active_project_id:
            return None
        return self.get_project(self.active_project_id)

    def set_active_project_id(self, project_id: str) -> bool:
        if project_id and self.get_project(project_id) is None:
            return False
        self.active_project_id = project_id
        self._persist()
        return True

    def add_project(self, project: Union[Project, Mapping[str, Any]]) -> Optional[Project]:
        raw = _wire_dict(project)
        if not raw.get("id") or self.get_project(raw["id"]) is not None:
            raw["id"] = new_id("p")
        raw.setdefault("stages", [])
        raw.setdefault("tasks", [])
        new_project = _build(Project, raw)
        if new_project is None:
            return None
        self.projects.append(new_project)
        self.active_project_id = new_project.id
        self._persist()
        return new_project

    def add_project_from_plan(self, plan: Union[Project, Mapping[str, Any]]) -> Optional[Project]:
        raw = _wire_dict(plan)
        raw["id"] = new_id("p-ai")
        return self.add_project(raw)

    def update_project(self, project: Project) -> bool:
        """Reemplaza el proyecto conservando `actual_hours` de las tareas existentes."""
        for index, current in enumerate(self.projects):
            if current.id == project.id:
                previous = {task.id: task.actual_hours for task in current.tasks}
                tasks = [
                    task.model_copy(update={"actual_hours": previous.get(task.id, 0.0)}, deep=True)
                    for task in project.tasks
                ]
                self.projects[index] = project.model_copy(update={"tasks": tasks}, deep=True)
                self._persist()
                return True
        return False

    def delete_project(self, project_id: str) -> Optional[Project]:
        removed = self.get_project(project_id)
        if removed is None:
            return None
        self.projects = [p for p in self.projects if p.id != project_id]
        if self.active_project_id == project_id:
            self.active_project_id = self.projects[0].id if self.projects else ""
        self._persist()
        return removed

    # Tareas (proyecto activo)

    def find_task(self, task_id: str) -> Optional[Task]:
        project = self._scoped_project()
        if project is None:
            return None
        return next((t for t in project.tasks if t.id == task_id), None)

    def add_task(self, data: Union[Task, Mapping[str, Any]]) -> Optional[Task]:
        project = self._scoped_project()
        if project is None:
            return None
        raw = _wire_dict(data)
        raw["id"] = new_id("task")
        raw["actualHours"] = 0.0
        task = _build(Task, raw)
        if task is None or not dates_in_order(task.start_date, task.end_date):
            return None
        project.tasks.append(task)
        self._persist()
        return task

    def update_task(self, task: Task) -> Optional[Task]:
        """Reemplaza la tarea; `actual_hours` solo cambia vía `add_actual_hours`."""
        project = self._scoped_project()
        if project is None or not dates_in_order(task.start_date, task.end_date):
            return None
        for index, current in enumerate(project.tasks):
            if current.id == task.id:
                updated = task.model_copy(update={"actual_hours": current.actual_hours}, deep=True)
                project.tasks[index] = updated
                self._persist()
                return updated
        return None

    def delete_task(self, task_id: str) -> Optional[Task]:
        project = self._scoped_project()
        task = self.find_task(task_id)
        if task is None:
            return None
        project.tasks = [t for t in project.tasks if t.id != task_id]
        self._persist()
        return task

    def update_task_status(self, task_id: str, status: Union[TaskStatus, str]) -> Optional[Task]:
        try:
            status = TaskStatus(status)
        except ValueError:
            return None
        task = self.find_task(task_id)
        if task is None:
            return None
        task.status = status
        self._persist()
        return task

    def add_actual_hours(self, task_id: str, delta: float) -> Optional[Task]:
        """Único mutador de `actual_hours`; el resultado nunca baja de 0."""
        task = self.find_task(task_id)
        if task is None:
            return None
        task.actual_hours = max(0.0, hours_value(task.actual_hours) + delta)
        self._persist()
        return task

    def task_stage_map(self) -> Dict[str, str]:
        """taskId → stageId de todos los proyectos."""
        return {
            task.id: task.stage_id
            for project in self.projects
            for task in project.tasks
            if isinstance(task.id, str) and isinstance(task.stage_id, str)
        }


# --- REGISTROS DE TIEMPO ---

class TimeLogStore(BaseStore):
    def __init__(self, client: PersistenceClient):
        super().__init__(client)
        self.time_logs: List[TimeLog] = [log.model_copy(deep=True) for log in client.get_data().time_logs]

    def hydrate(self, document: Document):
        self.time_logs = [log.model_copy(deep=True) for log in document.time_logs]
        self.is_hydrated = True

    def snapshot(self) -> Dict[str, Any]:
        return {"timeLogs": [log.to_wire() for log in self.time_logs]}

    def get_log(self, log_id: str) -> Optional[TimeLog]:
        return next((log for log in self.time_logs if log.id == log_id), None)

    def logs_for_task(self, task_id: str) -> List[TimeLog]:
        return [log for log in self.time_logs if log.task_id == task_id]

    def add_log(
        self,
        data: Union[TimeLog, Mapping[str, Any]],
        task_to_stage: Optional[Mapping[str, str]] = None,
    ) -> Optional[TimeLog]:
        """Sin `stageId` explícito se copia el stage actual de la tarea."""
        raw = _wire_dict(data)
        raw["id"] = new_id("log")
        task_id = raw.get("taskId")
        if not raw.get("stageId") and task_to_stage and isinstance(task_id, str):
            stage_id = task_to_stage.get(task_id)
            if stage_id:
                raw["stageId"] = stage_id
        log = _build(TimeLog, raw)
        if log is None or log.hours <= 0:
            return None
        self.time_logs.append(log)
        self._persist()
        return log

    def update_log(self, log_id: str, hours: Optional[float] = None, date: Optional[str] = None) -> Optional[TimeLog]:
        log = self.get_log(log_id)
        if log is None or (hours is not None and hours <= 0):
            return None
        if hours is not None:
            log.hours = float(hours)
        if date is not None:
            log.date = date
        self._persist()
        return log

    def delete_log(self, log_id: str) -> Optional[TimeLog]:
        log = self.get_log(log_id)
        if log is None:
            return None
        self.time_logs = [entry for entry in self.time_logs if entry.id != log_id]
        self._persist()
        return log

    def remove_logs_for_task(self, task_id: str) -> int:
        return self.remove_logs_for_tasks([task_id])

    def remove_logs_for_tasks(self, task_ids: Iterable[str]) -> int:
        ids = set(task_ids)
        if not ids:
            return 0
        remaining = [log for log in self.time_logs if log.task_id not in ids]
        removed = len(self.time_logs) - len(remaining)
        if removed:
            self.time_logs = remaining
            self._persist()
        return removed

    def backfill_stage_ids(self, task_to_stage: Mapping[str, str]) -> bool:
        """
        Completa `stage_id` en registros antiguos usando el stage actual de su
        tarea. Solo toca registros sin stage, así que repetirlo no cambia nada.
        """
        changed = False
        for log in self.time_logs:
            if log.stage_id:
                continue
            stage_id = task_to_stage.get(log.task_id)
            if not stage_id:
                continue
            log.stage_id = stage_id
            changed = True
        if changed:
            self._persist()
        return changed


# --- EQUIPO ---

class MemberStore(BaseStore):
    """CRUD de miembros. Borrar o renombrar no toca `Task.assignee`."""

    def __init__(self, client: PersistenceClient):
        super().__init__(client)
        self.members: List[Member] = [m.model_copy(deep=True) for m in client.get_data().members]

    def hydrate(self, document: Document):
        self.members = [m.model_copy(deep=True) for m in document.members]
        self.is_hydrated = True

    def snapshot(self) -> Dict[str, Any]:
        return {"members": [m.to_wire() for m in self.members]}

    def get_member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def add_member(self, data: Union[Member, Mapping[str, Any]]) -> Optional[Member]:
        raw = _wire_dict(data)
        raw["id"] = new_id("mbr")
        member = _build(Member, raw)
        if member is None:
            return None
        self.members.append(member)
        self._persist()
        return member

    def update_member(self, member: Member) -> bool:
        for index, current in enumerate(self.members):
            if current.id == member.id:
                self.members[index] = member.model_copy(deep=True)
                self._persist()
                return True
        return False

    def delete_member(self, member_id: str) -> Optional[Member]:
        member = self.get_member(member_id)
        if member is None:
            return None
        self.members = [m for m in self.members if m.id != member_id]
        self._persist()
        return member


# --- CONFIGURACION IA ---

class AISettingsStore(BaseStore):
    def __init__(self, client: PersistenceClient):
        super().__init__(client)
        self.settings: AISettings = client.get_data().ai_settings.model_copy()

    def hydrate(self, document: Document):
        self.settings = document.ai_settings.model_copy()
        self.is_hydrated = True

    def snapshot(self) -> Dict[str, Any]:
        return {"aiSettings": self.settings.to_wire()}

    def toggle_enabled(self) -> AISettings:
        self.settings = self.settings.model_copy(update={"enabled": not self.settings.enabled})
        self._persist()
        return self.settings

    def set_model(self, model: str) -> AISettings:
        self.settings = self.settings.model_copy(update={"model": model})
        self._persist()
        return self.settings
