from enum import Enum
from typing import Annotated, Any, List, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    WrapValidator,
    field_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_MODEL = "gemini-2.5-flash"

AVAILABLE_MODELS = [
    {"id": "gemini-2.0-flash", "name": "Gemini 2.0 Flash"},
    {"id": "gemini-2.5-flash", "name": "Gemini 2.5 Flash"},
    {"id": "gemini-2.5-pro", "name": "Gemini 2.5 Pro"},
]


class WireModel(BaseModel):
    """
    Base para todo lo que viaja en el documento JSON.

    Los atributos en Python son snake_case; en el cable se usan las claves
    camelCase del documento (`activeProjectId`, `taskId`, ...).
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class TaskStatus(str, Enum):
    TODO = "Todo"
    IN_PROGRESS = "In Progress"
    REVIEW = "Review"
    DONE = "Done"


# --- PROYECTOS ---

def _lenient(annotation, default=None):
    """
    Campo tolerante para los datos anidados de un proyecto: un valor inválido se conserva tal
    cual y un null toma `default`, en lugar de invalidar el proyecto entero.
    """
    adapter = TypeAdapter(annotation)

    def validate(value, handler):
        try:
            return adapter.validate_python(value)
        except ValidationError:
            return default if value is None else value

    return Annotated[Any, WrapValidator(validate)]


LenientStr = _lenient(StrictStr, "")
LenientOrder = _lenient(StrictInt, 0)
LenientHours = _lenient(Annotated[float, Field(ge=0, strict=True)], 0.0)
LenientStatus = _lenient(TaskStatus, TaskStatus.TODO)
LenientOptionalStr = _lenient(Optional[StrictStr])


class Stage(WireModel):
    id: LenientStr = ""
    name: LenientStr = ""
    order: LenientOrder = Field(0, description="Secuencia de despliegue, no necesita ser contigua")


class Task(WireModel):
    id: LenientStr = ""
    title: LenientStr = ""
    description: LenientStr = ""
    stage_id: LenientStr = Field("", description="Referencia débil a un Stage del mismo proyecto")
    status: LenientStatus = TaskStatus.TODO
    start_date: LenientStr = Field("", description="Fecha ISO (YYYY-MM-DD)")
    end_date: LenientStr = Field("", description="Fecha ISO (YYYY-MM-DD)")
    estimated_hours: LenientHours = 0.0
    actual_hours: LenientHours = 0.0
    assignee: LenientStr = Field("", description="Nombre libre, no es llave foránea de Member")


class Project(WireModel):
    """Solo se exige id, nombre y las dos listas; el contenido anidado se tolera."""
    id: str = Field(..., min_length=1, strict=True)
    name: str = Field(..., strict=True)
    description: LenientStr = ""
    due_date: LenientOptionalStr = None
    stages: List[Stage]
    tasks: List[Task]

    @field_validator("stages", "tasks", mode="before")
    @classmethod
    def drop_non_objects(cls, value):
        if isinstance(value, list):
            return [item for item in value if isinstance(item, (Mapping, BaseModel))]
        return value


# --- TIEMPOS ---

class TimeLog(WireModel):
    id: str = Field(..., min_length=1, strict=True)
    task_id: str = Field(..., min_length=1, strict=True)
    stage_id: Optional[str] = Field(None, description="Copia del stage de la tarea al registrar")
    date: str = Field(..., strict=True)
    hours: float = Field(..., ge=0, strict=True)
    user_id: str = ""


# --- EQUIPO ---

class Member(WireModel):
    id: str = Field(..., min_length=1, strict=True)
    name: str = Field(..., strict=True)
    role: str = Field(..., strict=True)
    color: str = Field(..., strict=True, description="Color de acento (hex)")


class AISettings(WireModel):
    enabled: bool = Field(..., strict=True)
    model: str = Field(..., strict=True)


# --- DOCUMENTO RAIZ ---

class Document(WireModel):
    """Agregado raíz persistido por el servicio. Es la unidad de persistencia."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    projects: List[Project] = []
    active_project_id: str = ""
    time_logs: List[TimeLog] = []
    members: List[Member] = []
    ai_settings: AISettings = Field(
        default_factory=lambda: AISettings(enabled=True, model=DEFAULT_MODEL)
    )

    def find_project(self, project_id: str) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)


def default_document() -> Document:
    return Document()


# --- IA (colaborador externo) ---

class Urgency(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Insight(WireModel):
    title: str = Field(..., strict=True)
    description: str = Field(..., strict=True)
    urgency: Urgency


class PlanTask(WireModel):
    title: str = Field(..., strict=True)
    description: str = Field(..., strict=True)
    estimated_hours: float = Field(..., strict=True)
    duration_days: float = Field(..., strict=True)


class PlanStage(WireModel):
    name: str = Field(..., strict=True)
    tasks: List[PlanTask]


class PlanResult(WireModel):
    stages: List[PlanStage]


class GeneratePlanRequest(BaseModel):
    description: Optional[str] = None
    model: Optional[str] = None


class InsightsRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project_data: Optional[dict] = None
    model: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True
