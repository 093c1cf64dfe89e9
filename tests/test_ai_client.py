# ruff: noqa

import asyncio
import json
from datetime import date

import httpx
import pytest

from conftest import make_project, make_task

from planea_client.ai import AIClient, PlanTimeoutError
from planea_client.planner import build_project_from_plan
from planea_common.schemas import PlanResult, Project


def _client(handler):
    return AIClient("http://testserver/api", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_generate_plan_filters_malformed_stages_and_tasks():
    data = {
        "stages": [
            {"name": "Diseño", "tasks": [
                {"title": "Wireframes", "description": "", "estimatedHours": 5, "durationDays": 2},
                {"title": "Sin horas", "description": ""},
            ]},
            {"name": 3, "tasks": []},
            {"name": "Sin tareas"},
        ]
    }

    def handler(request):
        assert json.loads(request.content) == {"description": "Sitio", "model": "m"}
        return httpx.Response(200, json={"ok": True, "data": data})

    plan = asyncio.run(_client(handler).generate_project_plan("Sitio", "m"))
    assert [stage.name for stage in plan.stages] == ["Diseño"]
    assert [task.title for task in plan.stages[0].tasks] == ["Wireframes"]


def test_generate_plan_failure_is_none():
    def handler(request):
        return httpx.Response(500, json={"ok": False, "error": "AI generation failed"})

    assert asyncio.run(_client(handler).generate_project_plan("Sitio", "m")) is None


def test_generate_plan_timeout_is_distinct_error():
    def handler(request):
        return httpx.Response(504, json={"ok": False, "error": "AI request timed out"})

    with pytest.raises(PlanTimeoutError):
        asyncio.run(_client(handler).generate_project_plan("Sitio", "m"))


def test_insights_failure_is_empty_list():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    project = Project.model_validate(make_project("p1", tasks=[make_task("t1")]))
    assert asyncio.run(_client(handler).get_project_insights(project, "m")) == []


def test_insights_keep_only_valid_entries():
    def handler(request):
        assert json.loads(request.content)["projectData"]["id"] == "p1"
        return httpx.Response(200, json={"ok": True, "data": [
            {"title": "Riesgo", "description": "x", "urgency": "High"},
            {"title": "Incompleta"},
        ]})

    project = Project.model_validate(make_project("p1"))
    insights = asyncio.run(_client(handler).get_project_insights(project, "m"))
    assert [i.title for i in insights] == ["Riesgo"]


def test_build_project_from_plan_chains_dates():
    plan = PlanResult.model_validate({"stages": [
        {"name": "Uno", "tasks": [
            {"title": "A", "description": "", "estimatedHours": 4, "durationDays": 3},
            {"title": "B", "description": "", "estimatedHours": 2, "durationDays": 0},
        ]},
        {"name": "Dos", "tasks": [{"title": "C", "description": "", "estimatedHours": 1, "durationDays": 1}]},
    ]})

    project = build_project_from_plan(plan, "Lanzar app. Versión móvil.", start=date(2025, 1, 1), unassigned="Sin asignar")

    assert project["name"] == "Lanzar app"
    assert project["stages"] == [{"id": "s-gen-0", "name": "Uno", "order": 0}, {"id": "s-gen-1", "name": "Dos", "order": 1}]
    spans = [(t["id"], t["startDate"], t["endDate"]) for t in project["tasks"]]
    assert spans == [
        ("t-gen-0-0", "2025-01-01", "2025-01-04"),
        ("t-gen-0-1", "2025-01-04", "2025-01-06"),
        ("t-gen-1-0", "2025-01-06", "2025-01-07"),
    ]
    assert all(t["status"] == "Todo" and t["actualHours"] == 0 for t in project["tasks"])
    assert project["tasks"][0]["assignee"] == "Sin asignar"
