"""
Todo list stream.
"""

from __future__ import annotations

import itertools
from typing import List, Optional, TypedDict

from ..builder import streamable
from ..stream import MutationHandle, StartResult


class Todo(TypedDict):
    id: int
    content: str
    is_completed: bool


class TodoApp(TypedDict):
    todos: List[Todo]


def _initializer(handle: MutationHandle[TodoApp], seed: Optional[TodoApp], _context: None) -> StartResult:
    initial: TodoApp = {"todos": [dict(todo) for todo in (seed or {}).get("todos", [])]}  # type: ignore[misc]
    ids = itertools.count(max((todo["id"] for todo in initial["todos"]), default=0) + 1)

    def add_todo(content: str) -> int:
        todo_id = next(ids)
        todo: Todo = {"id": todo_id, "content": str(content), "is_completed": False}
        handle.set(lambda prev: {**prev, "todos": [*prev["todos"], todo]})
        return todo_id

    def toggle_todo(todo_id: int) -> None:
        def update(prev: TodoApp) -> TodoApp:
            todos = [
                {**todo, "is_completed": not todo["is_completed"]} if todo["id"] == todo_id else todo
                for todo in prev["todos"]
            ]
            return {**prev, "todos": todos}  # type: ignore[typeddict-item]

        handle.set(update)

    def remove_todo(todo_id: int) -> None:
        handle.set(
            lambda prev: {**prev, "todos": [todo for todo in prev["todos"] if todo["id"] != todo_id]}
        )

    return StartResult(
        initial_value=initial,
        controller={"add_todo": add_todo, "toggle_todo": toggle_todo, "remove_todo": remove_todo},
    )


todo_app = streamable(dict).api(dict).impls(_initializer)
