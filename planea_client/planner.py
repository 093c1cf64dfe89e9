from datetime import date, timedelta
from typing import Any, Dict, Optional

from planea_common.schemas import PlanResult, TaskStatus

DEFAULT_DURATION_DAYS = 2


def build_project_from_plan(
    plan: PlanResult,
    description: str,
    start: Optional[date] = None,
    unassigned: str = "Unassigned",
) -> Dict[str, Any]:
    """
    Convierte un plan generado en un proyecto sin id.

    Las tareas se encadenan: cada una empieza el día en que terminó la
    anterior y dura `durationDays` (2 si no es positivo).
    """
    current = start or date.today()
    stages = []
    tasks = []
    for stage_index, stage in enumerate(plan.stages):
        stage_id = f"s-gen-{stage_index}"
        stages.append({"id": stage_id, "name": stage.name, "order": stage_index})
        for task_index, planned in enumerate(stage.tasks):
            days = int(planned.duration_days)
            end = current + timedelta(days=days if days > 0 else DEFAULT_DURATION_DAYS)
            tasks.append({
                "id": f"t-gen-{stage_index}-{task_index}",
                "title": planned.title,
                "description": planned.description,
                "stageId": stage_id,
                "status": TaskStatus.TODO.value,
                "startDate": current.isoformat(),
                "endDate": end.isoformat(),
                "estimatedHours": max(0.0, planned.estimated_hours),
                "actualHours": 0.0,
                "assignee": unassigned,
            })
            current = end

    return {
        "name": description.split(".")[0].strip(),
        "description": description,
        "stages": stages,
        "tasks": tasks,
    }
