from .schemas import (
    AISettings,
    Document,
    Insight,
    Member,
    PlanResult,
    Project,
    Stage,
    Task,
    TaskStatus,
    TimeLog,
    default_document,
)
from .normalize import normalize_document, repair_active_project_id, serialize_document
