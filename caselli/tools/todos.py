"""
Turn-scoped task list shown to the user while a multi-step request runs.

Lives only for one streaming response. The model is told to keep a single
item in progress; the list itself does not enforce it.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from caselli.tools.inputs import TodoItemInput


@dataclass
class Todo:
    index: int
    content: str
    active_form: str
    status: str = "pending"


class TodoList:
    def __init__(self) -> None:
        self._items: List[Todo] = []

    def __len__(self) -> int:
        return len(self._items)

    def replace(self, items: List[TodoItemInput]) -> None:
        """Create the list in bulk; any previous list is discarded."""
        self._items = [
            Todo(index=i, content=item.content, active_form=item.active_form)
            for i, item in enumerate(items)
        ]

    def set_status(self, index: int, status: str) -> Todo:
        """
        Raises:
            IndexError: If no item has that index
        """
        if index < 0 or index >= len(self._items):
            raise IndexError(f"No task at index {index} (list has {len(self._items)})")
        self._items[index].status = status
        return self._items[index]

    def snapshot(self) -> List[Dict[str, Any]]:
        return [asdict(item) for item in self._items]
