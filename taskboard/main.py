import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskboard import config, services
from taskboard.database import Store, get_store
from taskboard.errors import StorageError, TaskboardError
from taskboard.schemas import (
    CommentRequest,
    CreateProjectRequest,
    CreateTaskRequest,
    MoveTaskRequest,
    TaskStatus,
    TimeTrackingRequest,
    UpdateTaskRequest,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Taskboard API")


class EmptyPreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose accepted preflights carry no body."""

    def preflight_response(self, request_headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=200, headers=headers)


# Plain OPTIONS only; preflights are answered by the CORS layer wrapping this.
@app.middleware("http")
async def answer_options(request: Request, call_next):
    if request.method == "OPTIONS" and request.url.path.startswith("/api/"):
        return Response(status_code=200)
    return await call_next(request)


app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Helpers
def envelope(data: Any = None, message: Optional[str] = None, success: bool = True) -> dict:
    body = {"success": success}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return body


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope(message=message, success=False))


@app.exception_handler(TaskboardError)
async def handle_taskboard_error(request: Request, exc: TaskboardError):
    logger.info("%s %s failed: %s", request.method, request.url.path, exc.message)
    if isinstance(exc, StorageError):
        # Details are already logged by the store; clients get a generic message.
        return error_response(exc.status_code, "Failed to access data")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return error_response(404, "Endpoint not found")
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    for err in exc.errors():
        loc = err.get("loc", ())
        if loc and loc[0] in ("path", "query") and len(loc) > 1:
            return error_response(400, f"Invalid {str(loc[1]).replace('_', ' ')}")
    return error_response(400, "Invalid request body")


# Root endpoints
@app.get("/")
def read_root():
    return envelope(message="Taskboard backend is running")


@app.get("/test")
def test_storage(store: Store = Depends(get_store)):
    response = {
        "backend": "Running",
        "data_file": str(store.path),
        "data_file_exists": store.exists(),
        "collections": {},
    }
    try:
        data = store.snapshot()
        response["collections"] = {
            "projects": len(data.projects),
            "tasks": len(data.tasks),
            "time_entries": len(data.time_entries),
        }
        response["storage"] = "Working"
    except StorageError as e:
        response["storage"] = f"Error: {e.message[:50]}"
    return envelope(data=response)


# Tasks
@app.get("/api/tasks")
def list_tasks(project_id: Optional[int] = None, status: Optional[TaskStatus] = None,
               store: Store = Depends(get_store)):
    return envelope(data=services.list_tasks(store, project_id=project_id, status=status))


@app.post("/api/tasks", status_code=201)
def create_task(task: CreateTaskRequest, store: Store = Depends(get_store)):
    created = services.create_task(store, task)
    return envelope(data=created, message="Task created successfully")


@app.put("/api/tasks/{task_id}/done")
def mark_done(task_id: int, store: Store = Depends(get_store)):
    task = services.mark_done(store, task_id)
    return envelope(data=task, message="Task marked as done")


@app.put("/api/tasks/{task_id}/undone")
def mark_undone(task_id: int, store: Store = Depends(get_store)):
    task = services.mark_undone(store, task_id)
    return envelope(data=task, message="Task marked as undone")


@app.put("/api/tasks/{task_id}")
def update_task(task_id: int, update: UpdateTaskRequest, store: Store = Depends(get_store)):
    task = services.update_task(store, task_id, update)
    return envelope(data=task, message="Task updated successfully")


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: int, store: Store = Depends(get_store)):
    services.delete_task(store, task_id)
    return envelope(message="Task deleted successfully")


# Projects
@app.get("/api/projects")
def list_projects(store: Store = Depends(get_store)):
    return envelope(data=services.list_projects(store))


@app.post("/api/projects", status_code=201)
def create_project(project: CreateProjectRequest, store: Store = Depends(get_store)):
    created = services.create_project(store, project.name, project.description, project.color)
    return envelope(data=created, message="Project created successfully")


@app.put("/api/projects/{project_id}")
def update_project(project_id: int, project: CreateProjectRequest, store: Store = Depends(get_store)):
    updated = services.update_project(store, project_id, project.name, project.description, project.color)
    return envelope(data=updated, message="Project updated successfully")


@app.delete("/api/projects/{project_id}")
def delete_project(project_id: int, store: Store = Depends(get_store)):
    _, removed = services.delete_project(store, project_id)
    return envelope(
        data={"deleted_tasks": [t.id for t in removed]},
        message="Project deleted successfully",
    )


# Kanban
@app.get("/api/kanban")
def get_kanban(project_id: Optional[int] = None, store: Store = Depends(get_store)):
    return envelope(data=services.kanban_board(store, project_id=project_id))


@app.put("/api/kanban/move")
def move_task(move: MoveTaskRequest, store: Store = Depends(get_store)):
    task = services.move_task(store, move.task_id, move.new_status, move.position)
    return envelope(data=task, message="Task moved successfully")


# Time tracking
@app.post("/api/time/start", status_code=201)
def start_timer(req: TimeTrackingRequest, store: Store = Depends(get_store)):
    entry = services.start_timer(store, req.task_id, req.note)
    return envelope(data=entry, message="Timer started")


@app.put("/api/time/{entry_id}/stop")
def stop_timer(entry_id: int, store: Store = Depends(get_store)):
    entry = services.stop_timer(store, entry_id)
    return envelope(data=entry, message="Timer stopped")


@app.get("/api/time")
def list_time_entries(task_id: Optional[int] = None, store: Store = Depends(get_store)):
    return envelope(data=services.list_time_entries(store, task_id=task_id))


# Aggregates
@app.get("/api/stats")
def get_stats(store: Store = Depends(get_store)):
    return envelope(data=services.stats(store))


@app.get("/api/reports")
def get_reports(store: Store = Depends(get_store)):
    return envelope(data=services.report(store))


# Comments
@app.get("/api/comments")
def list_comments(task_id: Optional[int] = None, store: Store = Depends(get_store)):
    if task_id is None:
        raise HTTPException(status_code=400, detail="task_id is required")
    return envelope(data=services.list_comments(store, task_id))


@app.post("/api/comments")
def add_comment(comment: CommentRequest, store: Store = Depends(get_store)):
    created = services.add_comment(store, comment.task_id, comment.author, comment.text)
    return envelope(data=created, message="Comment added successfully")


_web = config.web_dir()
if _web is not None:
    app.mount("/ui", StaticFiles(directory=str(_web), html=True), name="ui")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.host(), port=config.port())
