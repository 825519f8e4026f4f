"""To-do CRUD resource.

A volatile, in-process list with no durability. Every route requires an
authenticated session.
"""

from __future__ import annotations

import time

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..auth.gate import require_user


if TYPE_CHECKING:
    from ..app import AppContext


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Todo(BaseModel):
    """A to-do item."""

    id: str
    title: str
    description: str = ""
    completed: bool = False
    createdAt: str  # noqa: N815
    updatedAt: str  # noqa: N815


class TodoCreate(BaseModel):
    """Body of ``POST /api/todos``."""

    title: str | None = None
    description: str | None = None


class TodoUpdate(BaseModel):
    """Body of ``PUT /api/todos/{id}``. Absent fields are left unchanged."""

    title: str | None = None
    description: str | None = None
    completed: bool | None = None


class TodoList:
    """In-memory to-do list, seeded with a welcome item."""

    def __init__(self) -> None:
        now = _now()
        self._items: list[Todo] = [
            Todo(
                id="1",
                title="Welcome to todoapi!",
                description="This is your first task. You can edit or delete it.",
                createdAt=now,
                updatedAt=now,
            )
        ]

    def all(self) -> list[Todo]:
        return list(self._items)

    def get(self, todo_id: str) -> Todo | None:
        return next((t for t in self._items if t.id == todo_id), None)

    def _new_id(self) -> str:
        candidate = int(time.time() * 1000)
        taken = {t.id for t in self._items}
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def add(self, title: str, description: str = "") -> Todo:
        now = _now()
        todo = Todo(
            id=self._new_id(),
            title=title,
            description=description,
            createdAt=now,
            updatedAt=now,
        )
        self._items.append(todo)
        return todo

    def update(self, todo_id: str, changes: TodoUpdate) -> Todo | None:
        todo = self.get(todo_id)
        if todo is None:
            return None
        if changes.title is not None:
            todo.title = changes.title.strip()
        if changes.description is not None:
            todo.description = changes.description.strip()
        if changes.completed is not None:
            todo.completed = changes.completed
        todo.updatedAt = _now()
        return todo

    def remove(self, todo_id: str) -> Todo | None:
        todo = self.get(todo_id)
        if todo is not None:
            self._items.remove(todo)
        return todo


def _not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"success": False, "message": "Todo not found"})


def create_todos_router(context: AppContext) -> APIRouter:
    """Create the to-do router (mounted at ``/api/todos``)."""
    router = APIRouter(tags=["todos"], dependencies=[Depends(require_user)])
    todos = context.todos

    @router.get("")
    async def list_todos() -> dict[str, Any]:
        items = todos.all()
        return {"success": True, "data": [t.model_dump() for t in items], "count": len(items)}

    @router.get("/{todo_id}")
    async def get_todo(todo_id: str) -> Any:
        todo = todos.get(todo_id)
        if todo is None:
            return _not_found()
        return {"success": True, "data": todo.model_dump()}

    @router.post("")
    async def create_todo(body: TodoCreate) -> JSONResponse:
        title = (body.title or "").strip()
        if not title:
            return JSONResponse(
                status_code=400,
                content={"success": False, "message": "Title is required"},
            )
        todo = todos.add(title, (body.description or "").strip())
        return JSONResponse(status_code=201, content={"success": True, "data": todo.model_dump()})

    @router.put("/{todo_id}")
    async def update_todo(todo_id: str, body: TodoUpdate) -> Any:
        todo = todos.update(todo_id, body)
        if todo is None:
            return _not_found()
        return {"success": True, "data": todo.model_dump()}

    @router.delete("/{todo_id}")
    async def delete_todo(todo_id: str) -> Any:
        todo = todos.remove(todo_id)
        if todo is None:
            return _not_found()
        return {"success": True, "message": "Todo deleted successfully", "data": todo.model_dump()}

    return router
