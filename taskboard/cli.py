"""Command-line entry point for taskboard.

Invoked as::

    taskboard [--data-file PATH] [COMMAND]

Commands
--------
shell   Interactive task shell (the default when no command is given)
serve   Run the HTTP API with uvicorn
"""

import os
import shlex
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from taskboard import config, services
from taskboard.database import Store, get_store
from taskboard.dates import parse_date
from taskboard.errors import InvalidRequest, TaskboardError
from taskboard.schemas import CreateTaskRequest, Priority, Task, TaskStatus, now, parse_priority

PRIORITY_COLORS = {
    Priority.LOW: "cyan",
    Priority.MEDIUM: "green",
    Priority.HIGH: "yellow",
    Priority.URGENT: "red",
}

CREATE_USAGE = (
    'Usage: create --desc "task description" [--priority low|medium|high|urgent] '
    "[--category name] [--due YYYY-MM-DD] [--tags tag1,tag2]"
)

HELP_SECTIONS = [
    ("Basic Commands", [
        ("add <description>", "Add a simple task"),
        ("list", "List all tasks"),
        ("done <id>", "Mark task as complete"),
        ("undone <id>", "Reopen a completed task"),
        ("delete <id>", "Delete a task"),
        ("view <id>", "View task details"),
    ]),
    ("Advanced Commands", [
        ('create --desc "..." [options]', "Create task with options"),
        ("  --priority <low|medium|high|urgent>", ""),
        ("  --category <name>", ""),
        ("  --due <date>", "YYYY-MM-DD, today, tomorrow, 'in 3 days'"),
        ("  --tags <tag1,tag2>", ""),
    ]),
    ("Filter & Search", [
        ("search <query>", "Search tasks by keyword"),
        ("category <name>", "List tasks by category"),
        ("stats", "Show task statistics"),
        ("projects", "List projects"),
    ]),
    ("Update Commands", [
        ("priority <id> <level>", "Update task priority"),
        ("due <id> <date>", "Set/update due date"),
        ("move <id> <status> [position]", "Move task to a kanban column"),
        ("comment <id> <text>", "Add a comment to a task"),
    ]),
    ("Time Tracking", [
        ("start <task-id> [note]", "Start the timer on a task"),
        ("stop <entry-id>", "Stop a running timer"),
    ]),
    ("Other", [
        ("help", "Show this help"),
        ("clear", "Clear screen"),
        ("quit/exit", "Exit program"),
    ]),
]


def priority_label(priority: Priority) -> str:
    return f"[{PRIORITY_COLORS[priority]}]{priority.label}[/]"


def parse_id(args: List[str], command: str) -> int:
    if not args:
        raise InvalidRequest(f"{command} requires an id")
    try:
        return int(args[0])
    except ValueError:
        raise InvalidRequest("id must be a number") from None


def parse_create_args(args: List[str]) -> CreateTaskRequest:
    """Turn ``create`` options into a request; raises InvalidRequest on bad input."""
    fields = {}
    options = {
        "--desc": "description", "-d": "description",
        "--priority": "priority", "-p": "priority",
        "--category": "category", "-c": "category",
        "--due": "due_date",
        "--tags": "tags", "-t": "tags",
    }
    i = 0
    while i < len(args):
        flag = args[i]
        if flag not in options:
            raise InvalidRequest(f"unknown option {flag}")
        if i + 1 >= len(args):
            raise InvalidRequest(f"{flag} requires a value")
        fields[options[flag]] = args[i + 1]
        i += 2

    if not fields.get("description"):
        raise InvalidRequest("description is required (use --desc)")
    if "due_date" in fields:
        # Surface the date error here instead of after the store is opened.
        parse_date(fields["due_date"])
    if "tags" in fields:
        fields["tags"] = [tag.strip() for tag in fields["tags"].split(",") if tag.strip()]
    return CreateTaskRequest(**fields)


class Shell:
    """Line-oriented front end. One command per line; errors never end the loop."""

    prompt = "\n[cyan]>[/cyan] "

    def __init__(self, store: Store, console: Optional[Console] = None):
        self.store = store
        self.console = console or Console(highlight=False)
        self.commands: Dict[str, Callable[[str], None]] = {
            "add": self.do_add,
            "create": self.do_create,
            "list": self.do_list,
            "view": self.do_view,
            "done": self.do_done,
            "undone": self.do_undone,
            "delete": self.do_delete,
            "del": self.do_delete,
            "priority": self.do_priority,
            "due": self.do_due,
            "move": self.do_move,
            "search": self.do_search,
            "category": self.do_category,
            "cat": self.do_category,
            "stats": self.do_stats,
            "projects": self.do_projects,
            "comment": self.do_comment,
            "start": self.do_start,
            "stop": self.do_stop,
            "help": self.do_help,
            "h": self.do_help,
            "?": self.do_help,
            "clear": self.do_clear,
            "cls": self.do_clear,
        }

    def run(self, stream: TextIO) -> None:
        self.console.print(Panel.fit("📋 Taskboard - Interactive Mode", border_style="cyan"))
        self.console.print("Type 'help' for available commands or 'quit' to exit")
        self.console.print("💡 Tip: run 'taskboard serve' to start the HTTP API")
        while True:
            self.console.print(self.prompt, end="")
            line = stream.readline()
            if not line:
                break
            if not self.execute(line):
                return

    def execute(self, line: str) -> bool:
        """Run one command line. Returns False when the user asked to quit."""
        parts = line.strip().split(None, 1)
        if not parts:
            return True
        command = parts[0]
        rest = parts[1] if len(parts) > 1 else ""
        if command in ("quit", "exit", "q"):
            self.console.print("\n👋 Goodbye! Stay productive!")
            return False
        handler = self.commands.get(command)
        if handler is None:
            self.console.print(f"Unknown command: {escape(command)}")
            self.console.print("Type 'help' for available commands")
            return True
        try:
            handler(rest)
        except TaskboardError as e:
            self.console.print(f"[red]Error:[/red] {escape(e.message)}")
        except ValueError as e:
            # shlex rejects unbalanced quotes
            self.console.print(f"[red]Error:[/red] {escape(str(e))}")
        return True

    # Tasks

    def do_add(self, rest: str) -> None:
        if not rest.strip():
            raise InvalidRequest("add requires a description")
        task = services.add_task(self.store, rest.strip())
        self.console.print(f"✓ Added #{task.id}: {escape(task.description)}")

    def do_create(self, rest: str) -> None:
        try:
            request = parse_create_args(shlex.split(rest))
        except InvalidRequest:
            self.console.print(CREATE_USAGE, markup=False)
            raise
        task = services.create_task(self.store, request)
        self.console.print(
            f"✓ Added #{task.id}: {escape(task.description)} \\[{priority_label(task.priority)}]"
        )

    def do_list(self, rest: str) -> None:
        tasks = services.sort_tasks(services.list_tasks(self.store))
        if not tasks:
            self.console.print("No tasks yet.")
            return
        self.console.print(self._task_table(tasks))

    def do_view(self, rest: str) -> None:
        task = services.get_task(self.store, parse_id(shlex.split(rest), "view"))
        self.console.print(self._task_panel(task))

    def do_done(self, rest: str) -> None:
        task = services.mark_done(self.store, parse_id(shlex.split(rest), "done"))
        self.console.print(f"✓ Completed #{task.id}")

    def do_undone(self, rest: str) -> None:
        task = services.mark_undone(self.store, parse_id(shlex.split(rest), "undone"))
        self.console.print(f"○ Reopened #{task.id}")

    def do_delete(self, rest: str) -> None:
        task = services.delete_task(self.store, parse_id(shlex.split(rest), "delete"))
        self.console.print(f"✓ Deleted #{task.id}")

    def do_priority(self, rest: str) -> None:
        args = shlex.split(rest)
        if len(args) < 2:
            raise InvalidRequest("priority requires an id and priority level")
        task = services.set_priority(self.store, parse_id(args, "priority"), parse_priority(args[1]))
        self.console.print(f"✓ Updated #{task.id} priority to {priority_label(task.priority)}")

    def do_due(self, rest: str) -> None:
        args = shlex.split(rest)
        if len(args) < 2:
            raise InvalidRequest("due requires an id and date")
        task_id = parse_id(args, "due")
        due_date = parse_date(" ".join(args[1:]))
        task = services.set_due_date(self.store, task_id, due_date)
        self.console.print(f"✓ Set due date for #{task.id} to {due_date:%Y-%m-%d}")

    def do_move(self, rest: str) -> None:
        args = shlex.split(rest)
        if len(args) < 2:
            raise InvalidRequest("move requires an id and a status")
        task_id = parse_id(args, "move")
        try:
            status = TaskStatus(args[1].lower())
        except ValueError:
            choices = ", ".join(s.value for s in TaskStatus)
            raise InvalidRequest(f"status must be one of: {choices}") from None
        if len(args) > 2:
            if not args[2].isdigit():
                raise InvalidRequest("position must be a non-negative number")
            position = int(args[2])
        else:
            position = services.get_task(self.store, task_id).position
        task = services.move_task(self.store, task_id, status, position)
        self.console.print(f"✓ Moved #{task.id} to {task.status.value}")

    def do_search(self, rest: str) -> None:
        query = rest.strip()
        if not query:
            raise InvalidRequest("search requires a query")
        found = services.search_tasks(self.store, query)
        if not found:
            self.console.print(f"No tasks found matching '{escape(query)}'")
            return
        self.console.print(f"\nFound {len(found)} task(s) matching '{escape(query)}':")
        self._print_brief(found)

    def do_category(self, rest: str) -> None:
        args = shlex.split(rest)
        if not args:
            raise InvalidRequest("category requires a category name")
        found = services.tasks_in_category(self.store, args[0])
        if not found:
            self.console.print(f"No tasks in category '{escape(args[0])}'")
            return
        self.console.print(f"\nTasks in category '{escape(args[0])}':")
        self._print_brief(found)

    def do_comment(self, rest: str) -> None:
        parts = rest.strip().split(None, 1)
        task_id = parse_id(parts, "comment")
        if len(parts) < 2:
            raise InvalidRequest("comment requires a text")
        comment = services.add_comment(self.store, task_id, os.getenv("USER", ""), parts[1])
        self.console.print(f"✓ Added comment #{comment.id} to #{task_id}")

    # Projects, timers, aggregates

    def do_projects(self, rest: str) -> None:
        projects = services.list_projects(self.store)
        if not projects:
            self.console.print("No projects yet.")
            return
        table = Table(title="Projects")
        table.add_column("ID", justify="right")
        table.add_column("Name")
        table.add_column("Description")
        table.add_column("Color")
        for p in projects:
            table.add_row(str(p.id), escape(p.name), escape(p.description), p.color)
        self.console.print(table)

    def do_start(self, rest: str) -> None:
        parts = rest.strip().split(None, 1)
        task_id = parse_id(parts, "start")
        entry = services.start_timer(self.store, task_id, parts[1] if len(parts) > 1 else "")
        self.console.print(f"⏱ Started timer #{entry.id} on #{task_id}")

    def do_stop(self, rest: str) -> None:
        entry = services.stop_timer(self.store, parse_id(shlex.split(rest), "stop"))
        minutes, seconds = divmod(entry.duration, 60)
        self.console.print(f"⏹ Stopped timer #{entry.id} after {minutes}m {seconds}s")

    def do_stats(self, rest: str) -> None:
        s = services.stats(self.store)
        total = s["total_tasks"]
        table = Table(title="📊 Task Statistics", show_header=False)
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        table.add_row("Total Tasks", str(total))
        rate = s["completed_tasks"] / max(total, 1) * 100
        table.add_row("Completed", f"{s['completed_tasks']} ({rate:.1f}%)")
        table.add_row("Pending", str(s["pending_tasks"]))
        table.add_row("Overdue", str(s["overdue_tasks"]))
        table.add_row("Hours Tracked", f"{s['total_hours_tracked']:.2f}")
        table.add_section()
        for level in reversed(Priority):
            table.add_row(
                f"{priority_label(level)} (pending)", str(s["by_priority"][level.name.lower()])
            )
        if s["categories"]:
            table.add_section()
            for category, count in sorted(s["categories"].items()):
                table.add_row(escape(category), str(count))
        self.console.print(table)

    def do_help(self, rest: str) -> None:
        table = Table(title="📋 Taskboard - Available Commands", show_header=False)
        table.add_column("Command", style="bold")
        table.add_column("Description")
        for title, rows in HELP_SECTIONS:
            table.add_row(f"[underline]{title}[/underline]", "")
            for command, description in rows:
                table.add_row(escape(command), escape(description))
            table.add_section()
        self.console.print(table)

    def do_clear(self, rest: str) -> None:
        self.console.clear()

    # Rendering

    def _due_text(self, task: Task) -> str:
        if task.due_date is None:
            return ""
        text = f"{task.due_date:%Y-%m-%d}"
        if task.is_overdue(now()):
            return f"[red]{text} ⚠[/red]"
        return text

    def _task_table(self, tasks: List[Task]) -> Table:
        table = Table()
        table.add_column("ID", justify="right")
        table.add_column("Status")
        table.add_column("Priority")
        table.add_column("Task", max_width=35)
        table.add_column("Category")
        table.add_column("Due Date")
        table.add_column("Tags")
        for t in tasks:
            description = t.description if len(t.description) <= 35 else t.description[:32] + "..."
            table.add_row(
                str(t.id),
                escape("[✓]" if t.done else "[ ]"),
                priority_label(t.priority),
                escape(description),
                escape(t.category or "general"),
                self._due_text(t),
                escape(", ".join(t.tags)),
            )
        return table

    def _task_panel(self, task: Task) -> Panel:
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="bold")
        grid.add_column()
        grid.add_row("Description", escape(task.description))
        grid.add_row("Status", f"{'✓ Completed' if task.done else '○ Pending'} ({task.status.value})")
        grid.add_row("Priority", priority_label(task.priority))
        if task.category:
            grid.add_row("Category", escape(task.category))
        if task.due_date:
            overdue = " [red]⚠ OVERDUE[/red]" if task.is_overdue(now()) else ""
            grid.add_row("Due Date", f"{task.due_date:%Y-%m-%d %H:%M}{overdue}")
        grid.add_row("Created", f"{task.created_at:%Y-%m-%d %H:%M}")
        if task.completed_at:
            grid.add_row("Completed", f"{task.completed_at:%Y-%m-%d %H:%M}")
        if task.tags:
            grid.add_row("Tags", escape(", ".join(task.tags)))
        if task.assignee:
            grid.add_row("Assignee", escape(task.assignee))
        for comment in task.comments:
            grid.add_row(f"Comment #{comment.id}", escape(f"{comment.author}: {comment.text}"))
        return Panel(grid, title=f"Task #{task.id}", expand=False)

    def _print_brief(self, tasks: List[Task]) -> None:
        for t in tasks:
            mark = "✓" if t.done else " "
            self.console.print(
                f"{escape('[' + mark + ']')} #{t.id} {priority_label(t.priority)}: {escape(t.description)}"
            )


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--data-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON store to use instead of TASKBOARD_DATA_FILE / ~/.project_manager.json",
)
@click.pass_context
def cli(ctx: click.Context, data_file: Optional[Path]) -> None:
    """Projects, tasks and time tracking from the terminal or over HTTP."""
    config.configure_logging()
    ctx.obj = Store(data_file) if data_file else get_store()
    if ctx.invoked_subcommand is None:
        ctx.invoke(shell_command)


@cli.command(name="shell")
@click.pass_obj
def shell_command(store: Store) -> None:
    """Start the interactive task shell."""
    Shell(store).run(sys.stdin)


@cli.command(name="serve")
@click.option("--host", default=config.host, show_default="HOST or 0.0.0.0")
@click.option("--port", default=config.port, type=int, show_default="PORT or 8080")
@click.option("--reload", is_flag=True, default=False, help="Restart on code changes")
@click.pass_obj
def serve_command(store: Store, host: str, port: int, reload: bool) -> None:
    """Run the HTTP API."""
    import uvicorn

    # The app resolves its store from the environment, also in reload workers.
    os.environ["TASKBOARD_DATA_FILE"] = str(store.path)
    uvicorn.run("taskboard.main:app", host=host, port=port, reload=reload,
                log_level=config.log_level().lower())


main = cli
