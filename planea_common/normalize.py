import logging
from typing import Any, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .schemas import AISettings, Document, Member, Project, TimeLog, default_document

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _as_wire(value: Any) -> Any:
    """Permite pasar modelos ya construidos en lugar de dicts crudos."""
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json", exclude_none=True)
    if isinstance(value, list):
        return [_as_wire(item) for item in value]
    return value


def _parse_or_none(model: Type[M], raw: Any) -> Optional[M]:
    if not isinstance(raw, Mapping):
        return None
    try:
        return model.model_validate(raw)
    except ValidationError:
        return None


def filter_valid(model: Type[M], items: List[Any]) -> List[M]:
    """
    Filtra una colección: los elementos inválidos se descartan en silencio,
    los válidos continúan. Nunca rechaza la colección completa.
    """
    valid = []
    for raw in items:
        parsed = _parse_or_none(model, _as_wire(raw))
        if parsed is None:
            logger.debug("Descartando %s inválido: %r", model.__name__, raw)
            continue
        valid.append(parsed)
    return valid


def is_valid_project(raw: Any) -> bool:
    return _parse_or_none(Project, raw) is not None


def is_valid_time_log(raw: Any) -> bool:
    return _parse_or_none(TimeLog, raw) is not None


def is_valid_member(raw: Any) -> bool:
    return _parse_or_none(Member, raw) is not None


def repair_active_project_id(document: Document) -> Document:
    """Reapunta `active_project_id` al primer proyecto disponible o lo vacía."""
    if document.active_project_id and document.find_project(document.active_project_id):
        return document
    document.active_project_id = document.projects[0].id if document.projects else ""
    return document


def normalize_document(data: Any, fallback: Optional[Document] = None) -> Document:
    """
    Fusiona un documento (completo o parcial) sobre `fallback`.

    Cada campo se valida por separado: si falta o tiene un tipo inválido se
    conserva el valor de `fallback`, no un valor por defecto fijo. Las listas
    válidas se filtran elemento a elemento. `ai_settings` se reemplaza
    completo o no se toca.
    """
    base = fallback if fallback is not None else default_document()
    incoming = data if isinstance(data, Mapping) else {}

    projects = incoming.get("projects")
    time_logs = incoming.get("timeLogs")
    members = incoming.get("members")
    active_project_id = incoming.get("activeProjectId")
    ai_settings = _parse_or_none(AISettings, _as_wire(incoming.get("aiSettings")))

    document = Document(
        projects=filter_valid(Project, projects) if isinstance(projects, list) else list(base.projects),
        active_project_id=active_project_id if isinstance(active_project_id, str) else base.active_project_id,
        time_logs=filter_valid(TimeLog, time_logs) if isinstance(time_logs, list) else list(base.time_logs),
        members=filter_valid(Member, members) if isinstance(members, list) else list(base.members),
        ai_settings=ai_settings if ai_settings is not None else base.ai_settings,
    )
    return repair_active_project_id(document)


def serialize_document(document: Document) -> dict:
    return document.to_wire()
