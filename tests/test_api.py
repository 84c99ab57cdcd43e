from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from taskflow.auth import create_access_token
from taskflow.database import get_db
from taskflow.main import app


@pytest.fixture()
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


def test_health_reports_database_status(client) -> None:
    response = client.get("/api/v1/system/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok", "version": "1.0.0"}


def test_missing_token_is_rejected(client) -> None:
    response = client.get("/api/v1/tasks")
    assert response.status_code in (401, 403)


def test_inactive_user_token_is_rejected(client, make_user) -> None:
    ghost = make_user("manager", is_active=False)

    response = client.get("/api/v1/tasks", headers=_auth(ghost))

    assert response.status_code == 401


def test_task_journey_over_http(client, bug_fixing, manager, member) -> None:
    stages = bug_fixing.stages

    created = client.post(
        "/api/v1/tasks",
        json={"title": "Checkout button unresponsive", "workflow_id": str(bug_fixing.id), "assignee_ids": [str(member.id)]},
        headers=_auth(manager),
    )
    assert created.status_code == 201
    task = created.json()
    assert task["current_stage"]["name"] == "Reported"
    assert task["assignees"][0]["id"] == str(member.id)
    assert task["activity"][0]["action"] == "created"

    moved = client.post(
        f"/api/v1/tasks/{task['id']}/stage",
        json={"stage_id": str(stages[1].id)},
        headers=_auth(manager),
    )
    assert moved.status_code == 200
    assert moved.json()["current_stage"]["name"] == "Triaged"
    assert moved.json()["version"] == 2

    skipped = client.post(
        f"/api/v1/tasks/{task['id']}/stage",
        json={"stage_id": str(stages[4].id)},
        headers=_auth(manager),
    )
    assert skipped.status_code == 400
    assert skipped.headers["content-type"].startswith("application/problem+json")
    assert skipped.json()["code"] == "INVALID_TRANSITION"
    assert skipped.json()["detail"] == "Can only move to adjacent stages (or final stage)"

    inbox = client.get("/api/v1/notifications", headers=_auth(member))
    assert inbox.status_code == 200
    body = inbox.json()
    assert body["unread_count"] == 2
    assert [item["type"] for item in body["data"]] == ["task_stage_changed", "task_assigned"]
    assert body["data"][0]["metadata"] == {"oldStage": "Reported", "newStage": "Triaged"}

    read = client.patch(f"/api/v1/notifications/{body['data'][0]['id']}/read", headers=_auth(member))
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert read.json()["metadata"] == {"oldStage": "Reported", "newStage": "Triaged"}
    assert client.get("/api/v1/notifications/unread-count", headers=_auth(member)).json() == {"unread_count": 1}


def test_member_cannot_create_tasks_over_http(client, bug_fixing, member) -> None:
    response = client.post(
        "/api/v1/tasks",
        json={"title": "Nope", "workflow_id": str(bug_fixing.id)},
        headers=_auth(member),
    )
    assert response.status_code == 403


def test_workflow_endpoints(client, default_workflows, manager) -> None:
    listed = client.get("/api/v1/workflows", params={"is_default": True}, headers=_auth(manager))
    assert listed.status_code == 200
    assert listed.json()["pagination"]["total"] == 4

    created = client.post(
        "/api/v1/workflows",
        json={
            "name": "Hiring",
            "stages": [
                {"name": "Offer", "order": 2},
                {"name": "Applied", "order": 0, "color": "#3B82F6"},
                {"name": "Interview", "order": 1},
            ],
        },
        headers=_auth(manager),
    )
    assert created.status_code == 201
    workflow = created.json()
    assert [stage["name"] for stage in workflow["stages"]] == ["Applied", "Interview", "Offer"]
    assert workflow["stages"][-1]["is_final"] is True

    applied, interview, offer = (stage["id"] for stage in workflow["stages"])
    check = client.post(
        f"/api/v1/workflows/{workflow['id']}/validate-transition",
        json={"from_stage_id": offer, "to_stage_id": applied},
        headers=_auth(manager),
    )
    assert check.json() == {"valid": False, "reason": "Can only move to adjacent stages (or final stage)"}
    one_back = client.post(
        f"/api/v1/workflows/{workflow['id']}/validate-transition",
        json={"from_stage_id": offer, "to_stage_id": interview},
        headers=_auth(manager),
    )
    assert one_back.json() == {"valid": False, "reason": "Cannot move backwards from final stage"}

    adjacent = client.get(
        f"/api/v1/workflows/{workflow['id']}/stages/{interview}/adjacent",
        headers=_auth(manager),
    )
    assert adjacent.json()["previous"]["id"] == applied
    assert adjacent.json()["next"]["id"] == offer

    bad_color = client.post(
        "/api/v1/workflows",
        json={"name": "Broken", "stages": [{"name": "Only", "order": 0, "color": "blue"}]},
        headers=_auth(manager),
    )
    assert bad_color.status_code == 422

    deleted = client.delete(f"/api/v1/workflows/{workflow['id']}", headers=_auth(manager))
    assert deleted.status_code == 204

    protected = client.delete(f"/api/v1/workflows/{default_workflows['Bug Fixing'].id}", headers=_auth(manager))
    assert protected.status_code == 403
    assert protected.json()["code"] == "PERMISSION_DENIED"


def test_validate_transition_requires_workflow_access(client, make_user, manager) -> None:
    outsider = make_user("manager")
    created = client.post(
        "/api/v1/workflows",
        json={"name": "Procurement", "stages": [{"name": "Requested", "order": 0}, {"name": "Ordered", "order": 1}]},
        headers=_auth(manager),
    )
    requested, ordered = (stage["id"] for stage in created.json()["stages"])

    response = client.post(
        f"/api/v1/workflows/{created.json()['id']}/validate-transition",
        json={"from_stage_id": requested, "to_stage_id": ordered},
        headers=_auth(outsider),
    )

    assert response.status_code == 403
    assert response.json()["code"] == "PERMISSION_DENIED"


def test_report_endpoints(client, bug_fixing, make_task, manager, member) -> None:
    make_task(bug_fixing, assignees=[member], priority="high")

    stats = client.get("/api/v1/tasks/stats", params={"workflow_id": str(bug_fixing.id)}, headers=_auth(manager))
    counts = client.get(f"/api/v1/workflows/{bug_fixing.id}/stage-counts", headers=_auth(member))

    assert stats.status_code == 200
    assert stats.json()["total"] == 1
    assert stats.json()["by_priority"] == {"low": 0, "medium": 0, "high": 1}
    assert stats.json()["by_stage"][0]["name"] == "Reported"
    assert counts.status_code == 200
    assert counts.json()["workflow_name"] == "Bug Fixing"
    assert [stage["task_count"] for stage in counts.json()["stages"]][:2] == [1, 0]


def test_mark_all_notifications_read_uses_patch(client, bug_fixing, make_task, member) -> None:
    make_task(bug_fixing, assignees=[member])

    assert client.post("/api/v1/notifications/read-all", headers=_auth(member)).status_code == 405
    response = client.patch("/api/v1/notifications/read-all", headers=_auth(member))

    assert response.status_code == 200
    assert response.json() == {"updated": 1}
    assert client.get("/api/v1/notifications/unread-count", headers=_auth(member)).json() == {"unread_count": 0}
