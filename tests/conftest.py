# ruff: noqa

import os
import tempfile
from pathlib import Path

os.environ.setdefault("PLANEA_DATA_PATH", str(Path(tempfile.gettempdir()) / "planea-tests" / "seed.json"))

import httpx
import pytest
from fastapi.testclient import TestClient

from planea_client.storage import PersistenceClient
from planea_server.main import app
from planea_server.storage import DocumentStore, get_store


def make_task(task_id="t1", stage_id="s1", **overrides):
    task = {
        "id": task_id,
        "title": "Diseño",
        "description": "",
        "stageId": stage_id,
        "status": "Todo",
        "startDate": "2025-01-01",
        "endDate": "2025-01-05",
        "estimatedHours": 10,
        "actualHours": 0,
        "assignee": "Ana",
    }
    task.update(overrides)
    return task


def make_project(project_id="p1", tasks=None, **overrides):
    project = {
        "id": project_id,
        "name": f"Proyecto {project_id}",
        "description": "",
        "stages": [{"id": "s1", "name": "Planeación", "order": 0}, {"id": "s2", "name": "Desarrollo", "order": 1}],
        "tasks": tasks if tasks is not None else [],
    }
    project.update(overrides)
    return project


@pytest.fixture
def store(tmp_path):
    return DocumentStore(tmp_path / "seed.json")


@pytest.fixture
def api(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


class RecordingTransport(httpx.MockTransport):
    """MockTransport que guarda las peticiones recibidas."""

    def __init__(self, handler):
        self.requests = []

        def record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def puts(self):
        return [r for r in self.requests if r.method == "PUT"]


def offline_client(document=None, **kwargs):
    """PersistenceClient con transporte falso; GET devuelve `document`."""
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=document or {})
        return httpx.Response(200, json={"ok": True})

    transport = RecordingTransport(handler)
    kwargs.setdefault("debounce_seconds", 0.01)
    client = PersistenceClient(
        "http://testserver/api",
        http_client=httpx.AsyncClient(transport=transport),
        **kwargs,
    )
    return client, transport
