"""
Task engine

Every operation the two front ends expose lives here. Mutations run inside a
single ``store.transaction()`` so the load, the change and the save happen as
one step; reads use ``store.snapshot()``.
"""

import logging
from datetime import datetime
from functools import cmp_to_key
from typing import Dict, List, Optional, Tuple

from taskboard.database import (
    Store,
    create_document,
    ensure_default_project,
    get_document,
    get_documents,
)
from taskboard.dates import parse_date
from taskboard.errors import InvalidRequest, TimerAlreadyActive, TimerNotRunning
from taskboard.schemas import (
    DEFAULT_COLOR,
    AppData,
    Comment,
    CreateTaskRequest,
    Priority,
    Project,
    Task,
    TaskStatus,
    TimeEntry,
    UpdateTaskRequest,
    can_transition,
    now,
    parse_priority,
)

logger = logging.getLogger(__name__)

CLEAR_DUE_DATE = {"", "null", "clear"}


# Ordering

def _compare_tasks(a: Task, b: Task) -> int:
    if a.done != b.done:
        return 1 if a.done else -1
    if a.priority != b.priority:
        return -1 if a.priority > b.priority else 1
    if a.due_date is not None and b.due_date is not None and a.due_date != b.due_date:
        return -1 if a.due_date < b.due_date else 1
    return (a.id > b.id) - (a.id < b.id)


def sort_tasks(tasks: List[Task]) -> List[Task]:
    """Open before finished, then highest priority, then earliest due date, then id."""
    return sorted(tasks, key=cmp_to_key(_compare_tasks))


def kanban_columns(tasks: List[Task]) -> Dict[str, List[Task]]:
    board: Dict[str, List[Task]] = {status.value: [] for status in TaskStatus}
    for task in tasks:
        board[task.status.value].append(task)
    for column in board.values():
        column.sort(key=lambda t: (t.position, t.id))
    return board


# Tasks

def set_status(task: Task, status: TaskStatus, at: Optional[datetime] = None) -> None:
    """Move a task to another column, keeping completed_at in step with it.

    Every move into done stamps completed_at, also when the task was already done.
    """
    if not can_transition(task.status, status):
        raise InvalidRequest(f"Cannot move task #{task.id} from {task.status.value} to {status.value}")
    if status == TaskStatus.DONE:
        task.completed_at = at or now()
    else:
        task.completed_at = None
    task.status = status


def _require_description(description: Optional[str]) -> str:
    if description is None or not description.strip():
        raise InvalidRequest("Description cannot be empty")
    return description


def add_task(store: Store, description: str) -> Task:
    return create_task(store, CreateTaskRequest(description=description))


def create_task(store: Store, request: CreateTaskRequest) -> Task:
    description = _require_description(request.description)
    due_date = parse_date(request.due_date) if request.due_date else None
    with store.transaction() as data:
        if request.project_id:
            get_document(data, "projects", request.project_id)
            project_id = request.project_id
        else:
            project_id = ensure_default_project(data).id
        task = create_document(
            data, "tasks",
            project_id=project_id,
            description=description,
            category=request.category,
            priority=parse_priority(request.priority) if request.priority else Priority.MEDIUM,
            status=request.status or TaskStatus.TODO,
            due_date=due_date,
            tags=[tag.strip() for tag in request.tags if tag.strip()],
            assignee=request.assignee,
            estimated_hours=request.estimated_hours,
            position=len(data.tasks),
        )
        if task.status == TaskStatus.DONE:
            task.completed_at = task.created_at
    logger.info("Created task #%d in project #%d", task.id, task.project_id)
    return task


def get_task(store: Store, task_id: int) -> Task:
    return get_document(store.snapshot(), "tasks", task_id)


def list_tasks(store: Store, project_id: Optional[int] = None,
               status: Optional[TaskStatus] = None) -> List[Task]:
    """Tasks in stored order, optionally narrowed to one project or column."""
    filt = {}
    if project_id:
        filt["project_id"] = project_id
    if status:
        filt["status"] = status
    return get_documents(store.snapshot(), "tasks", filt)


def search_tasks(store: Store, query: str) -> List[Task]:
    q = query.strip().lower()
    found = []
    for task in store.snapshot().tasks:
        if q in task.description.lower() or q in task.category.lower():
            found.append(task)
        elif any(q in tag.lower() for tag in task.tags):
            found.append(task)
    return found


def tasks_in_category(store: Store, category: str) -> List[Task]:
    wanted = category.strip().lower()
    return [t for t in store.snapshot().tasks if t.category.lower() == wanted]


def update_task(store: Store, task_id: int, request: UpdateTaskRequest) -> Task:
    fields = request.provided()
    if "description" in fields and fields["description"] is not None:
        _require_description(fields["description"])

    due_date_given = "due_date" in fields
    due_date = None
    if due_date_given:
        raw = fields["due_date"]
        if raw is not None and raw.strip().lower() not in CLEAR_DUE_DATE:
            due_date = parse_date(raw)

    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        for name in ("description", "category", "assignee", "project_id",
                     "estimated_hours", "position"):
            if fields.get(name) is not None:
                setattr(task, name, fields[name])
        if fields.get("priority"):
            task.priority = parse_priority(fields["priority"])
        if "tags" in fields:
            task.tags = list(fields["tags"] or [])
        if due_date_given:
            task.due_date = due_date
        if fields.get("status") is not None:
            set_status(task, fields["status"])
    logger.info("Updated task #%d (%s)", task_id, ", ".join(sorted(fields)) or "no fields")
    return task


def mark_done(store: Store, task_id: int) -> Task:
    """Complete a task. completed_at is re-stamped even if it was done before."""
    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        set_status(task, TaskStatus.DONE)
    logger.info("Completed task #%d", task_id)
    return task


def mark_undone(store: Store, task_id: int) -> Task:
    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        if task.done:
            set_status(task, TaskStatus.TODO)
    logger.info("Reopened task #%d", task_id)
    return task


def set_priority(store: Store, task_id: int, priority: Priority) -> Task:
    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        task.priority = priority
    return task


def set_due_date(store: Store, task_id: int, due_date: Optional[datetime]) -> Task:
    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        task.due_date = due_date
    return task


def move_task(store: Store, task_id: int, new_status: TaskStatus, position: int) -> Task:
    if position < 0:
        raise InvalidRequest("Position cannot be negative")
    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        set_status(task, new_status)
        task.position = position
    logger.info("Moved task #%d to %s at %d", task_id, new_status.value, position)
    return task


def delete_task(store: Store, task_id: int) -> Task:
    """Remove one task. Its time entries stay behind."""
    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        data.tasks = [t for t in data.tasks if t.id != task_id]
    logger.info("Deleted task #%d", task_id)
    return task


def kanban_board(store: Store, project_id: Optional[int] = None) -> Dict[str, List[Task]]:
    return kanban_columns(list_tasks(store, project_id=project_id))


# Projects

def list_projects(store: Store) -> List[Project]:
    return store.snapshot().projects


def create_project(store: Store, name: str, description: str = "", color: str = "") -> Project:
    if not name or not name.strip():
        raise InvalidRequest("Project name cannot be empty")
    stamp = now()
    with store.transaction() as data:
        project = create_document(
            data, "projects",
            name=name, description=description, color=color or DEFAULT_COLOR,
            created_at=stamp, updated_at=stamp,
        )
    logger.info("Created project #%d %r", project.id, project.name)
    return project


def update_project(store: Store, project_id: int, name: str,
                   description: str = "", color: str = "") -> Project:
    if not name or not name.strip():
        raise InvalidRequest("Project name is required")
    with store.transaction() as data:
        project = get_document(data, "projects", project_id)
        project.name = name
        project.description = description
        if color:
            project.color = color
        project.updated_at = now()
    return project


def delete_project(store: Store, project_id: int) -> Tuple[Project, List[Task]]:
    """Delete a project and every task filed under it, in one save."""
    with store.transaction() as data:
        project = get_document(data, "projects", project_id)
        removed = [t for t in data.tasks if t.project_id == project_id]
        data.projects = [p for p in data.projects if p.id != project_id]
        data.tasks = [t for t in data.tasks if t.project_id != project_id]
    logger.info("Deleted project #%d and %d task(s)", project_id, len(removed))
    return project, removed


# Comments

def add_comment(store: Store, task_id: int, author: str, text: str) -> Comment:
    if not task_id or not text:
        raise InvalidRequest("task_id and text are required")
    with store.transaction() as data:
        task = get_document(data, "tasks", task_id)
        comment = Comment(
            id=max((c.id for c in task.comments), default=0) + 1,
            task_id=task_id,
            author=author,
            text=text,
        )
        task.comments.append(comment)
    return comment


def list_comments(store: Store, task_id: int) -> List[Comment]:
    return get_task(store, task_id).comments


# Time tracking

def _running(data: AppData) -> Optional[TimeEntry]:
    for entry in data.time_entries:
        if entry.is_running:
            return entry
    return None


def start_timer(store: Store, task_id: int, note: str = "") -> TimeEntry:
    """Start the one store-wide timer. Fails if any timer is already running."""
    with store.transaction() as data:
        if _running(data) is not None:
            raise TimerAlreadyActive()
        entry = create_document(data, "time_entries", task_id=task_id, start_time=now(), note=note)
    logger.info("Started timer #%d on task #%d", entry.id, task_id)
    return entry


def stop_timer(store: Store, entry_id: int) -> TimeEntry:
    with store.transaction() as data:
        entry = get_document(data, "time_entries", entry_id)
        if not entry.is_running:
            raise TimerNotRunning(f"Time entry #{entry_id} is not running")
        stopped = now()
        entry.end_time = stopped
        entry.duration = int((stopped - entry.start_time).total_seconds())
    logger.info("Stopped timer #%d after %ds", entry_id, entry.duration)
    return entry


def active_timer(store: Store) -> Optional[TimeEntry]:
    return _running(store.snapshot())


def list_time_entries(store: Store, task_id: Optional[int] = None) -> List[TimeEntry]:
    filt = {"task_id": task_id} if task_id else None
    return get_documents(store.snapshot(), "time_entries", filt)


# Aggregates

def _priority_counts() -> Dict[str, int]:
    return {p.name.lower(): 0 for p in Priority}


def _tracked_seconds(data: AppData) -> int:
    # stopped entries only; duration is frozen when the timer stops
    return sum(e.duration for e in data.time_entries if e.end_time is not None)


def compute_stats(data: AppData, at: Optional[datetime] = None) -> dict:
    at = at or now()
    completed = 0
    overdue = 0
    by_priority = _priority_counts()
    categories: Dict[str, int] = {}
    for task in data.tasks:
        if task.done:
            completed += 1
        else:
            by_priority[task.priority.name.lower()] += 1
            if task.is_overdue(at):
                overdue += 1
        if task.category:
            categories[task.category] = categories.get(task.category, 0) + 1

    tracked = _tracked_seconds(data)
    return {
        "total_tasks": len(data.tasks),
        "completed_tasks": completed,
        "pending_tasks": len(data.tasks) - completed,
        "overdue_tasks": overdue,
        "total_projects": len(data.projects),
        "total_hours_tracked": tracked / 3600,
        "by_priority": by_priority,
        "categories": categories,
    }


def build_report(data: AppData, at: Optional[datetime] = None) -> dict:
    at = at or now()
    names = {p.id: p.name for p in data.projects}
    completed = 0
    overdue = 0
    estimated = 0.0
    by_project: Dict[str, int] = {}
    by_status: Dict[str, int] = {}
    by_priority: Dict[str, int] = {}
    for task in data.tasks:
        if task.done:
            completed += 1
        elif task.is_overdue(at):
            overdue += 1
        estimated += task.estimated_hours
        by_status[task.status.value] = by_status.get(task.status.value, 0) + 1
        level = task.priority.name.lower()
        by_priority[level] = by_priority.get(level, 0) + 1
        # tasks of deleted or unknown projects are left out of by_project
        if task.project_id in names:
            name = names[task.project_id]
            by_project[name] = by_project.get(name, 0) + 1

    total = len(data.tasks)
    return {
        "summary": {
            "total_tasks": total,
            "completed_tasks": completed,
            "completion_rate": completed / total * 100 if total else 0.0,
            "overdue_tasks": overdue,
            "total_estimated_hours": estimated,
            "total_tracked_hours": _tracked_seconds(data) / 3600,
            "total_projects": len(data.projects),
        },
        "by_project": by_project,
        "by_status": by_status,
        "by_priority": by_priority,
    }


def stats(store: Store, at: Optional[datetime] = None) -> dict:
    return compute_stats(store.snapshot(), at)


def report(store: Store, at: Optional[datetime] = None) -> dict:
    return build_report(store.snapshot(), at)
