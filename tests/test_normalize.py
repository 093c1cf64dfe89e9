# ruff: noqa

from conftest import make_project, make_task

from planea_common.normalize import (
    is_valid_member,
    is_valid_project,
    is_valid_time_log,
    normalize_document,
    serialize_document,
)
from planea_common.schemas import AISettings, Document, default_document


def _document():
    return normalize_document(
        {
            "projects": [make_project("p1", tasks=[make_task("t1")]), make_project("p2", dueDate="2025-07-31")],
            "activeProjectId": "p2",
            "timeLogs": [{"id": "l1", "taskId": "t1", "stageId": "s1", "date": "2025-01-02", "hours": 3, "userId": "u1"}],
            "members": [{"id": "m1", "name": "Ana", "role": "PM", "color": "#336699"}],
            "aiSettings": {"enabled": False, "model": "gemini-2.5-pro"},
        }
    )


def test_default_document_shape():
    data = serialize_document(default_document())
    assert data == {
        "projects": [],
        "activeProjectId": "",
        "timeLogs": [],
        "members": [],
        "aiSettings": {"enabled": True, "model": "gemini-2.5-flash"},
    }


def test_round_trip_of_valid_document_is_stable():
    document = _document()
    assert serialize_document(normalize_document(serialize_document(document))) == serialize_document(document)


def test_round_trip_keeps_unknown_entity_fields():
    document = normalize_document({"projects": [make_project("p1", color="teal")]})
    assert serialize_document(document)["projects"][0]["color"] == "teal"


def test_unknown_top_level_keys_are_ignored():
    document = normalize_document({"projects": [], "theme": "dark"})
    assert "theme" not in serialize_document(document)


def test_project_validator():
    assert is_valid_project(make_project())
    assert not is_valid_project(make_project(id=""))
    assert not is_valid_project(make_project(name=None))
    assert not is_valid_project(make_project(stages="nope"))
    assert not is_valid_project({"id": "p1", "name": "x", "stages": []})
    assert not is_valid_project("p1")


def test_time_log_validator():
    log = {"id": "l1", "taskId": "t1", "date": "2025-01-01", "hours": 0}
    assert is_valid_time_log(log)
    assert not is_valid_time_log({**log, "hours": -1})
    assert not is_valid_time_log({**log, "hours": "2"})
    assert not is_valid_time_log({k: v for k, v in log.items() if k != "taskId"})
    assert not is_valid_time_log({**log, "date": None})


def test_member_validator():
    member = {"id": "m1", "name": "Ana", "role": "PM", "color": "#fff"}
    assert is_valid_member(member)
    assert not is_valid_member({**member, "color": 3})
    assert not is_valid_member({**member, "id": ""})


def test_invalid_entries_are_filtered_not_rejected():
    document = normalize_document(
        {
            "projects": [make_project("p1"), {"id": "", "name": "x", "stages": [], "tasks": []}],
            "timeLogs": [
                {"id": "l1", "taskId": "t1", "date": "2025-01-01", "hours": 2},
                {"id": "l2", "date": "2025-01-01", "hours": 2},
            ],
        }
    )
    assert [p.id for p in document.projects] == ["p1"]
    assert [log.id for log in document.time_logs] == ["l1"]


def test_absent_or_mistyped_fields_keep_fallback():
    fallback = _document()
    document = normalize_document({"projects": "broken", "members": None, "activeProjectId": 7}, fallback)
    assert [p.id for p in document.projects] == ["p1", "p2"]
    assert [m.id for m in document.members] == ["m1"]
    assert document.active_project_id == "p2"
    assert document.time_logs == fallback.time_logs


def test_ai_settings_fall_back_as_a_whole():
    fallback = _document()
    partial = normalize_document({"aiSettings": {"enabled": "yes", "model": "gemini-2.0-flash"}}, fallback)
    assert partial.ai_settings == AISettings(enabled=False, model="gemini-2.5-pro")

    replaced = normalize_document({"aiSettings": {"enabled": True, "model": "gemini-2.0-flash"}}, fallback)
    assert replaced.ai_settings == AISettings(enabled=True, model="gemini-2.0-flash")


def test_active_project_id_is_repaired():
    assert normalize_document({"projects": [], "activeProjectId": "missing"}).active_project_id == ""

    document = normalize_document({"projects": [make_project("p1"), make_project("p2")], "activeProjectId": "gone"})
    assert document.active_project_id == "p1"

    document = normalize_document({"projects": [make_project("p1")], "activeProjectId": ""})
    assert document.active_project_id == "p1"


def test_non_mapping_input_returns_fallback():
    fallback = _document()
    assert serialize_document(normalize_document(["junk"], fallback)) == serialize_document(fallback)


def test_accepts_models_as_input():
    fallback = default_document()
    source = _document()
    document = normalize_document({"projects": source.projects, "aiSettings": source.ai_settings}, fallback)
    assert [p.id for p in document.projects] == ["p1", "p2"]
    assert document.ai_settings.model == "gemini-2.5-pro"


def test_permissive_task_dates_and_stage_references_survive():
    task = make_task("t1", stage_id="no-such-stage", startDate="2025-02-10", endDate="2025-02-01")
    document = normalize_document({"projects": [make_project("p1", tasks=[task])]})
    assert document.projects[0].tasks[0].stage_id == "no-such-stage"
    assert isinstance(document, Document)


def test_malformed_nested_entries_keep_their_project():
    tasks = [
        make_task("t1"),
        make_task("t2", estimatedHours=None, status="Blocked"),
        "junk",
    ]
    stages = [{"id": "s1", "name": "Planeación", "order": 1.5}]
    document = normalize_document({"projects": [make_project("p1", tasks=tasks, stages=stages)], "activeProjectId": "p1"})

    project = document.projects[0]
    assert document.active_project_id == "p1"
    assert [t.id for t in project.tasks] == ["t1", "t2"]
    assert project.tasks[1].estimated_hours == 0.0
    assert project.tasks[1].status == "Blocked"
    assert project.stages[0].order == 1.5
    assert serialize_document(normalize_document(serialize_document(document))) == serialize_document(document)
