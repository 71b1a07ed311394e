from taskboard.schemas import AppData, Project, Task


def _create_task(client, **body):
    body.setdefault("description", "Write docs")
    response = client.post("/api/tasks", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_root_and_diagnostics(client, data_file):
    assert client.get("/").json()["success"] is True
    body = client.get("/test").json()
    assert body["data"]["data_file"] == str(data_file)
    assert body["data"]["data_file_exists"] is False
    assert body["data"]["storage"] == "Working"


def test_create_and_list_tasks(client):
    created = client.post("/api/tasks", json={"description": "Write docs", "priority": "high", "tags": ["a"]})
    assert created.status_code == 201
    body = created.json()
    assert body["success"] is True
    assert body["message"] == "Task created successfully"
    task = body["data"]
    assert task["id"] == 1
    assert task["project_id"] == 1
    assert task["priority"] == 2
    assert task["status"] == "todo"
    assert task["done"] is False
    assert task["due_date"] is None

    listed = client.get("/api/tasks").json()
    assert listed == {"success": True, "data": [task]}


def test_create_task_validation(client):
    response = client.post("/api/tasks", json={"description": "  "})
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Description cannot be empty"}

    response = client.post("/api/tasks", json={"description": "x", "due_date": "next thursday"})
    assert response.status_code == 400
    assert response.json()["message"].startswith("invalid date format")

    response = client.post("/api/tasks", json={"description": "x", "due_date": "in 3000000 days"})
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["message"].startswith("invalid date format")

    response = client.post("/api/tasks", json={"description": "x", "status": "blocked"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid request body"}

    response = client.post("/api/tasks", content="not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400

    response = client.post("/api/tasks", json={"description": "x", "project_id": 5})
    assert response.status_code == 404
    assert response.json()["message"] == "Project #5 not found"


def test_done_and_undone(client):
    task = _create_task(client)
    done = client.put(f"/api/tasks/{task['id']}/done").json()
    assert done["message"] == "Task marked as done"
    assert done["data"]["done"] is True
    assert done["data"]["status"] == "done"
    assert done["data"]["completed_at"] is not None

    undone = client.put(f"/api/tasks/{task['id']}/undone").json()
    assert undone["data"]["done"] is False
    assert undone["data"]["completed_at"] is None


def test_bad_and_unknown_ids(client):
    response = client.put("/api/tasks/abc/done")
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid task id"}

    response = client.put("/api/tasks/99", json={"description": "x"})
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Task #99 not found"}

    assert client.delete("/api/tasks/99").status_code == 404


def test_partial_update(client):
    task = _create_task(client, category="docs", estimated_hours=5, due_date="2030-01-01")
    response = client.put(f"/api/tasks/{task['id']}", json={"estimated_hours": 0, "position": 0})
    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["estimated_hours"] == 0
    assert updated["category"] == "docs"
    assert updated["due_date"] == task["due_date"]

    cleared = client.put(f"/api/tasks/{task['id']}", json={"due_date": "clear", "status": "done"}).json()["data"]
    assert cleared["due_date"] is None
    assert cleared["done"] is True

    assert client.put(f"/api/tasks/{task['id']}", json={"position": -1}).status_code == 400
    assert client.put(f"/api/tasks/{task['id']}", json={"status": "blocked"}).status_code == 400


def test_delete_task(client):
    task = _create_task(client)
    response = client.delete(f"/api/tasks/{task['id']}")
    assert response.json() == {"success": True, "message": "Task deleted successfully"}
    assert client.get("/api/tasks").json()["data"] == []


def test_project_routes(client):
    assert client.post("/api/projects", json={"name": ""}).status_code == 400
    created = client.post("/api/projects", json={"name": "Work", "description": "job"})
    assert created.status_code == 201
    project = created.json()["data"]
    assert project["color"] == "#6366f1"

    updated = client.put(f"/api/projects/{project['id']}", json={"name": "Job", "color": "#123456"}).json()
    assert updated["data"]["name"] == "Job"
    assert updated["data"]["color"] == "#123456"
    assert client.put(f"/api/projects/{project['id']}", json={"name": ""}).status_code == 400
    assert client.put("/api/projects/77", json={"name": "x"}).status_code == 404

    names = [p["name"] for p in client.get("/api/projects").json()["data"]]
    assert names == ["Job"]


def test_delete_project_cascades(client, store):
    store.save(AppData(
        projects=[Project(id=1, name="Default"), Project(id=2, name="Work")],
        tasks=[Task(id=1, project_id=2, description="A"), Task(id=2, project_id=1, description="B")],
    ))
    response = client.delete("/api/projects/2")
    assert response.status_code == 200
    assert response.json()["data"] == {"deleted_tasks": [1]}
    assert [t["description"] for t in client.get("/api/tasks").json()["data"]] == ["B"]
    assert [p["id"] for p in client.get("/api/projects").json()["data"]] == [1]


def test_kanban(client):
    first = _create_task(client, description="one")
    second = _create_task(client, description="two")
    moved = client.put("/api/kanban/move", json={"task_id": second["id"], "new_status": "done", "position": 0})
    assert moved.json()["data"]["done"] is True

    board = client.get("/api/kanban").json()["data"]
    assert list(board) == ["backlog", "todo", "in_progress", "in_review", "done"]
    assert [t["id"] for t in board["todo"]] == [first["id"]]
    assert [t["id"] for t in board["done"]] == [second["id"]]

    other = client.get("/api/kanban", params={"project_id": 42}).json()["data"]
    assert all(column == [] for column in other.values())
    assert client.get("/api/kanban", params={"project_id": "x"}).status_code == 400

    bad = client.put("/api/kanban/move", json={"task_id": first["id"], "new_status": "nowhere", "position": 0})
    assert bad.status_code == 400
    missing = client.put("/api/kanban/move", json={"task_id": 99, "new_status": "todo", "position": 0})
    assert missing.status_code == 404


def test_time_tracking(client):
    started = client.post("/api/time/start", json={"task_id": 1, "note": "focus"})
    assert started.status_code == 201
    entry = started.json()["data"]
    assert entry["end_time"] is None

    again = client.post("/api/time/start", json={"task_id": 2})
    assert again.status_code == 400
    assert again.json() == {"success": False, "message": "There's already an active timer running"}

    stopped = client.put(f"/api/time/{entry['id']}/stop").json()
    assert stopped["message"] == "Timer stopped"
    assert stopped["data"]["end_time"] is not None
    assert client.put(f"/api/time/{entry['id']}/stop").status_code == 400
    assert client.put("/api/time/9/stop").status_code == 404

    client.post("/api/time/start", json={"task_id": 2})
    assert [e["task_id"] for e in client.get("/api/time", params={"task_id": 1}).json()["data"]] == [1]
    assert len(client.get("/api/time").json()["data"]) == 2


def test_stats_and_reports(client):
    _create_task(client, category="dev")
    task = _create_task(client)
    client.put(f"/api/tasks/{task['id']}/done")

    stats = client.get("/api/stats").json()["data"]
    assert stats["total_tasks"] == 2
    assert stats["completed_tasks"] == 1
    assert stats["categories"] == {"dev": 1}

    report = client.get("/api/reports").json()["data"]
    assert report["summary"]["completion_rate"] == 50.0
    assert report["by_project"] == {"Default": 2}


def test_comments(client):
    task = _create_task(client)
    assert client.get("/api/comments").json() == {"success": False, "message": "task_id is required"}
    assert client.post("/api/comments", json={"task_id": task["id"]}).status_code == 400

    added = client.post("/api/comments", json={"task_id": task["id"], "author": "amy", "text": "hi"})
    assert added.status_code == 200
    assert added.json()["data"]["id"] == 1

    comments = client.get("/api/comments", params={"task_id": task["id"]}).json()["data"]
    assert [c["text"] for c in comments] == ["hi"]
    assert client.get("/api/comments", params={"task_id": 5}).status_code == 404


def test_cors_and_preflight(client):
    response = client.options("/api/tasks")
    assert response.status_code == 200
    assert response.content == b""

    preflight = client.options(
        "/api/tasks/1",
        headers={"Origin": "http://example.com", "Access-Control-Request-Method": "PUT"},
    )
    assert preflight.status_code == 200
    assert "access-control-allow-origin" in preflight.headers
    assert preflight.content == b""
    assert preflight.headers.get("content-length", "0") == "0"
    assert "PUT" in preflight.headers["access-control-allow-methods"]

    simple = client.get("/api/tasks", headers={"Origin": "http://example.com"})
    assert "access-control-allow-origin" in simple.headers


def test_unknown_endpoint(client):
    response = client.get("/api/nothing")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Endpoint not found"}


def test_storage_failure_is_a_500(tmp_path):
    from fastapi.testclient import TestClient

    from taskboard.database import Store, get_store
    from taskboard.main import app

    app.dependency_overrides[get_store] = lambda: Store(tmp_path)
    try:
        response = TestClient(app).get("/api/tasks")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Failed to access data"}
