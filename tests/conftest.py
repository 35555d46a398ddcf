"""Shared fixtures: in-memory Todoist and source fakes, temporary snapshot stores."""

from dataclasses import replace
from pathlib import Path

import pytest
import pytest_asyncio

from taskbridge.core.config import AppConfig, GeneralConfig
from taskbridge.core.models import (
    ItemKind,
    MirroredTask,
    RemoteFields,
    RemoteItem,
    TaskCreate,
    TaskUpdate,
)
from taskbridge.sources.base import ReadOnlySource, WritableSource
from taskbridge.utils.dates import utc_now_iso
from taskbridge.utils.db import SnapshotStore, SyncStateDB

INBOX_ID = "inbox-project"


def _copy(task: MirroredTask) -> MirroredTask:
    return replace(task, labels=list(task.labels))


class FakeTodoist:
    """In-memory stand-in for TodoistClient.

    ``fail`` maps a method name to an exception raised on every call.
    """

    def __init__(self):
        self.tasks: dict[str, MirroredTask] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}
        self._next_id = 100

    def _check(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise self.fail[name]

    def calls_to(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def add(self, content: str, project_id: str = INBOX_ID, **kwargs) -> MirroredTask:
        """Seed a task as if the user had created it in Todoist."""
        self._next_id += 1
        task = MirroredTask(id=str(self._next_id), content=content, project_id=project_id, **kwargs)
        self.tasks[task.id] = task
        return _copy(task)

    async def resolve_project_id(self, project_id: str) -> str:
        self._check("resolve_project_id", project_id)
        return INBOX_ID if project_id.lower() == "inbox" else project_id

    async def get_project_tasks(self, project_id: str) -> list[MirroredTask]:
        self._check("get_project_tasks", project_id)
        return [
            _copy(task)
            for task in self.tasks.values()
            if task.project_id == project_id and not task.is_completed
        ]

    async def list_container_item_ids(self, project_id: str) -> set[str]:
        return {task.id for task in await self.get_project_tasks(project_id)}

    async def get_task(self, task_id: str) -> MirroredTask | None:
        self._check("get_task", task_id)
        task = self.tasks.get(task_id)
        return _copy(task) if task else None

    async def create_task(self, params: TaskCreate) -> MirroredTask:
        self._check("create_task", params)
        self._next_id += 1
        task = MirroredTask(
            id=str(self._next_id),
            content=params.content,
            project_id=params.project_id,
            description=params.description or "",
            labels=list(params.labels),
            due_date=params.due_date,
            due_datetime=params.due_string,
            parent_id=params.parent_id,
        )
        self.tasks[task.id] = task
        return _copy(task)

    async def update_task(self, task_id: str, params: TaskUpdate) -> MirroredTask:
        self._check("update_task", task_id, params)
        task = self.tasks[task_id]
        if params.content is not None:
            task.content = params.content
        if params.description is not None:
            task.description = params.description
        if params.due_date is not None:
            task.due_date = params.due_date
        elif params.due_string is not None:
            task.due_date = None
            task.due_datetime = None if params.due_string == "no date" else params.due_string
        if params.labels is not None:
            task.labels = list(params.labels)
        return _copy(task)

    async def complete_task(self, task_id: str) -> None:
        self._check("complete_task", task_id)
        self.tasks[task_id].is_completed = True

    async def reopen_task(self, task_id: str) -> None:
        self._check("reopen_task", task_id)
        self.tasks[task_id].is_completed = False

    async def delete_task(self, task_id: str) -> None:
        self._check("delete_task", task_id)
        self.tasks.pop(task_id, None)

    async def close(self) -> None:
        self.calls.append(("close",))


class FakeSource(ReadOnlySource):
    """Read-only source serving whatever ``items`` holds."""

    kind = ItemKind.GOOGLE_TASK

    def __init__(self, items: list[RemoteItem] | None = None):
        self.items: list[RemoteItem] = list(items or [])
        self.deleted: list[str] = []
        self.delete_error: Exception | None = None
        self.closed = False

    async def list_items(self, scope: str, include_completed: bool = False) -> list[RemoteItem]:
        return [
            replace(item)
            for item in self.items
            if item.list_id == scope and (include_completed or not item.completed)
        ]

    async def delete_item(self, scope: str, item: RemoteItem) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(item.native_id)
        self.items = [existing for existing in self.items if existing.native_id != item.native_id]

    async def close(self) -> None:
        self.closed = True


class FakeWritableSource(WritableSource):
    """Writable source keyed by native ID. Writes stamp the current time."""

    kind = ItemKind.MICROSOFT_TASK

    def __init__(self, user_id: str | None = "me"):
        self.items: dict[str, RemoteItem] = {}
        self.user_id = user_id
        self.calls: list[tuple] = []
        self._next_id = 0

    def calls_to(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def add(self, title: str, scope: str = "list-1", **kwargs) -> RemoteItem:
        self._next_id += 1
        kwargs.setdefault("status", "completed" if kwargs.get("completed") else "notStarted")
        item = RemoteItem(native_id=f"ms{self._next_id}", title=title, list_id=scope, **kwargs)
        self.items[item.native_id] = item
        return replace(item)

    async def list_items(self, scope: str, include_completed: bool = False) -> list[RemoteItem]:
        return [
            replace(item)
            for item in self.items.values()
            if item.list_id == scope and (include_completed or not item.completed)
        ]

    async def get_item(self, scope: str, native_id: str) -> RemoteItem | None:
        self.calls.append(("get_item", native_id))
        item = self.items.get(native_id)
        return replace(item) if item else None

    async def delete_item(self, scope: str, item: RemoteItem) -> None:
        self.calls.append(("delete_item", item.native_id))
        self.items.pop(item.native_id, None)

    async def create_item(self, scope: str, fields: RemoteFields) -> RemoteItem:
        self.calls.append(("create_item", fields))
        self._next_id += 1
        item = RemoteItem(
            native_id=f"ms{self._next_id}",
            title=fields.title or "",
            list_id=scope,
            notes=fields.notes,
            status="notStarted",
            due=fields.due,
            modified_at=utc_now_iso(),
            owner_id=self.user_id,
        )
        self.items[item.native_id] = item
        return replace(item)

    async def update_item(self, scope: str, native_id: str, fields: RemoteFields) -> RemoteItem:
        self.calls.append(("update_item", native_id, fields))
        item = self.items[native_id]
        if fields.title is not None:
            item.title = fields.title
        if fields.notes is not None:
            item.notes = fields.notes or None
        if fields.due:
            item.due = fields.due
        elif fields.clear_due:
            item.due = None
        item.modified_at = utc_now_iso()
        return replace(item)

    async def set_completion(self, scope: str, native_id: str, completed: bool) -> RemoteItem:
        self.calls.append(("set_completion", native_id, completed))
        item = self.items[native_id]
        item.completed = completed
        item.status = "completed" if completed else "notStarted"
        item.modified_at = utc_now_iso()
        return replace(item)

    async def current_user_id(self) -> str | None:
        return self.user_id


@pytest.fixture
def todoist() -> FakeTodoist:
    return FakeTodoist()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "taskbridge.db"


@pytest_asyncio.fixture
async def google_store(db_path: Path) -> SnapshotStore:
    store = SnapshotStore(db_path, ItemKind.GOOGLE_TASK)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def microsoft_store(db_path: Path) -> SnapshotStore:
    store = SnapshotStore(db_path, ItemKind.MICROSOFT_TASK)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def state_db(db_path: Path) -> SyncStateDB:
    state = SyncStateDB(db_path)
    await state.initialize()
    return state


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(general=GeneralConfig(data_dir=tmp_path))
