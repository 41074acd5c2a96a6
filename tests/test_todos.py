"""
Tests for the turn-scoped task list and its tools.
"""

import pytest

from caselli.tools.inputs import TodoItemInput
from caselli.tools.todos import TodoList

PLAN = [
    {"content": "Pull comps for Main St", "active_form": "Pulling comps"},
    {"content": "Draft the listing", "active_form": "Drafting the listing"},
    {"content": "Email the seller", "active_form": "Emailing the seller"},
]


class TestTodoList:
    def test_replace_and_snapshot(self):
        todos = TodoList()
        todos.replace([TodoItemInput.model_validate(item) for item in PLAN])

        snapshot = todos.snapshot()
        assert len(todos) == 3
        assert snapshot[0] == {
            "index": 0,
            "content": "Pull comps for Main St",
            "active_form": "Pulling comps",
            "status": "pending",
        }

    def test_set_status_out_of_range(self):
        todos = TodoList()
        with pytest.raises(IndexError):
            todos.set_status(0, "completed")


class TestTodoTools:
    async def test_plan_then_progress(self, executor, tool_ctx):
        created = await executor.execute("create_todos", {"todos": PLAN}, tool_ctx)
        started = await executor.execute(
            "update_todo", {"index": 0, "status": "in_progress"}, tool_ctx
        )

        assert created.success
        assert started.result["todos"][0]["status"] == "in_progress"
        assert [t["status"] for t in tool_ctx.todos.snapshot()] == [
            "in_progress",
            "pending",
            "pending",
        ]

    async def test_new_plan_replaces_the_old_one(self, executor, tool_ctx):
        await executor.execute("create_todos", {"todos": PLAN}, tool_ctx)
        await executor.execute("create_todos", {"todos": PLAN[:1]}, tool_ctx)

        assert len(tool_ctx.todos) == 1

    async def test_update_unknown_index(self, executor, tool_ctx):
        await executor.execute("create_todos", {"todos": PLAN}, tool_ctx)

        outcome = await executor.execute(
            "update_todo", {"index": 7, "status": "completed"}, tool_ctx
        )

        assert outcome.result == {"error": "No task at index 7 (list has 3)"}

    async def test_invalid_status(self, executor, tool_ctx):
        outcome = await executor.execute(
            "update_todo", {"index": 0, "status": "done"}, tool_ctx
        )
        assert outcome.result["error"].startswith("Invalid input for update_todo: status:")
