"""Task-list tools. They only touch the turn's in-memory TodoList."""

from caselli.tools.executor import ToolContext, ToolHandler, ToolOutcome
from caselli.tools.inputs import CreateTodosInput, UpdateTodoInput


class CreateTodos(ToolHandler):
    input_model = CreateTodosInput
    task_type = "todos"

    async def run(self, params: CreateTodosInput, ctx: ToolContext) -> ToolOutcome:
        ctx.todos.replace(params.todos)
        return self.outcome(
            {"todos": ctx.todos.snapshot()}, f"Planned {len(ctx.todos)} tasks"
        )


class UpdateTodo(ToolHandler):
    input_model = UpdateTodoInput
    task_type = "todos"

    async def run(self, params: UpdateTodoInput, ctx: ToolContext) -> ToolOutcome:
        try:
            item = ctx.todos.set_status(params.index, params.status)
        except IndexError as e:
            return self.failure(str(e))
        return self.outcome(
            {"todos": ctx.todos.snapshot()}, f"{item.content}: {params.status}"
        )
