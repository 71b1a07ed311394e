"""Projects, tasks and time tracking shared by a terminal shell and an HTTP API."""

__version__ = "0.1.0"
