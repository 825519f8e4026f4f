"""Collaborator routes: health and the to-do resource."""

from __future__ import annotations

from .health import create_health_router
from .todos import TodoList, create_todos_router


__all__ = ["TodoList", "create_health_router", "create_todos_router"]
