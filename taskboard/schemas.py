"""
Store Schemas

The whole store is one JSON document (see database.py) shaped like AppData:

- projects      -> List[Project]
- tasks         -> List[Task], each carrying its own comments
- time_entries  -> List[TimeEntry]

The request models at the bottom are the wire shapes accepted by the API and
reused by the interactive shell.
"""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

DEFAULT_PROJECT_NAME = "Default"
DEFAULT_COLOR = "#6366f1"


def now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


class Priority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    URGENT = 3

    @property
    def label(self) -> str:
        return self.name


_PRIORITY_TOKENS = {
    "low": Priority.LOW, "l": Priority.LOW, "1": Priority.LOW,
    "medium": Priority.MEDIUM, "med": Priority.MEDIUM, "m": Priority.MEDIUM, "2": Priority.MEDIUM,
    "high": Priority.HIGH, "h": Priority.HIGH, "3": Priority.HIGH,
    "urgent": Priority.URGENT, "u": Priority.URGENT, "4": Priority.URGENT,
}


def parse_priority(token: Optional[str]) -> Priority:
    """Map a free-text priority to a level; unknown input means MEDIUM."""
    return _PRIORITY_TOKENS.get((token or "").strip().lower(), Priority.MEDIUM)


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    DONE = "done"


# Kanban columns accept moves from anywhere. Guards go here, not in callers.
STATUS_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    status: frozenset(TaskStatus) for status in TaskStatus
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in STATUS_TRANSITIONS[current]


class Project(BaseModel):
    """
    Projects collection
    Deleting a project deletes every task whose project_id points at it.
    """
    id: int = Field(..., description="Store-unique id, max(existing) + 1")
    name: str = Field(..., description="Project name")
    description: str = Field("", description="Project description")
    color: str = Field(DEFAULT_COLOR, description="Display color hint")
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)


class Comment(BaseModel):
    id: int = Field(..., description="Id scoped to the owning task")
    task_id: int
    author: str = ""
    text: str
    created_at: datetime = Field(default_factory=now)


class Task(BaseModel):
    """
    Tasks collection

    ``status`` is authoritative. ``done`` is derived from it and only written
    out so older readers of the file keep working; ``completed_at`` is stamped
    when the task enters the done column and cleared when it leaves.
    """
    id: int = Field(..., description="Store-unique id, max(existing) + 1")
    project_id: int = Field(0, description="Owning project id")
    description: str = Field(..., description="Task description")
    category: str = Field("", description="Free-text category")
    priority: Priority = Field(Priority.MEDIUM, description="0=low .. 3=urgent")
    status: TaskStatus = Field(TaskStatus.TODO, description="Kanban column")
    due_date: Optional[datetime] = Field(None, description="Always 23:59:59 local of the due day")
    created_at: datetime = Field(default_factory=now)
    completed_at: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    assignee: str = ""
    estimated_hours: float = Field(0.0, ge=0)
    position: int = Field(0, description="Order within the kanban column")
    comments: List[Comment] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_done(cls, data):
        # Files written by older versions track completion in a separate
        # boolean and may leave status empty.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy_done = bool(data.pop("done", False))
        if legacy_done:
            data["status"] = TaskStatus.DONE.value
        elif not data.get("status"):
            data["status"] = TaskStatus.TODO.value
        for key in ("tags", "comments"):
            if data.get(key) is None:
                data.pop(key, None)
        return data

    @computed_field
    @property
    def done(self) -> bool:
        return self.status == TaskStatus.DONE

    def is_overdue(self, at: datetime) -> bool:
        return not self.done and self.due_date is not None and self.due_date < at


class TimeEntry(BaseModel):
    id: int
    task_id: int = Field(..., description="Not checked against existing tasks")
    start_time: datetime = Field(default_factory=now)
    end_time: Optional[datetime] = Field(None, description="null means the timer is running")
    duration: int = Field(0, description="Whole seconds, frozen when stopped")
    note: str = ""

    @property
    def is_running(self) -> bool:
        return self.end_time is None


class AppData(BaseModel):
    projects: List[Project] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    time_entries: List[TimeEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _null_collections(cls, data):
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
        return data


# Requests

class CreateTaskRequest(BaseModel):
    description: str = ""
    project_id: int = Field(0, description="0 means the Default project")
    category: str = ""
    priority: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = Field(None, description="Any expression dates.parse_date accepts")
    tags: List[str] = Field(default_factory=list)
    assignee: str = ""
    estimated_hours: float = Field(0.0, ge=0)


class UpdateTaskRequest(BaseModel):
    """
    Partial update. Only fields present in the request are applied, so zero,
    empty and null are real values here. ``due_date`` also accepts the
    strings "null" and "clear".
    """
    description: Optional[str] = None
    project_id: Optional[int] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = None
    tags: Optional[List[str]] = None
    assignee: Optional[str] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    position: Optional[int] = Field(None, ge=0)

    def provided(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


class CreateProjectRequest(BaseModel):
    name: str = ""
    description: str = ""
    color: str = ""


class MoveTaskRequest(BaseModel):
    task_id: int
    new_status: TaskStatus
    position: int = Field(0, ge=0)


class TimeTrackingRequest(BaseModel):
    task_id: int
    note: str = ""


class CommentRequest(BaseModel):
    task_id: int = 0
    author: str = ""
    text: str = ""
