"""Google Tasks API client and source adapter."""

import logging
from typing import Any, Awaitable, Callable

import httpx

from taskbridge.core.models import ItemKind, RemoteItem
from taskbridge.sources.base import ReadOnlySource
from taskbridge.utils.dates import extract_date_only
from taskbridge.utils.retry import with_retry

logger = logging.getLogger(__name__)

GOOGLE_TASKS_URL = "https://tasks.googleapis.com/tasks/v1"

NEEDS_ACTION = "needsAction"
COMPLETED = "completed"


def item_from_payload(data: dict[str, Any], list_id: str) -> RemoteItem:
    """Normalize a Google task resource."""
    status = data.get("status") or NEEDS_ACTION
    return RemoteItem(
        native_id=data["id"],
        title=data.get("title") or "",
        list_id=list_id,
        notes=data.get("notes") or None,
        status=status,
        completed=status == COMPLETED,
        due=extract_date_only(data.get("due")),
        modified_at=data.get("updated"),
        parent_id=data.get("parent") or None,
        extra={"position": data["position"]} if data.get("position") else {},
    )


class GoogleTasksClient:
    """Thin async wrapper around the Google Tasks REST API."""

    def __init__(
        self,
        get_access_token: Callable[[], Awaitable[str]],
        *,
        base_url: str = GOOGLE_TASKS_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            get_access_token: Coroutine returning a valid OAuth access token
            base_url: API base URL
            transport: Optional httpx transport (used by tests)
        """
        self._get_access_token = get_access_token
        self._client = httpx.AsyncClient(base_url=base_url, timeout=30.0, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        async def call() -> Any:
            token = await self._get_access_token()
            response = await self._client.request(
                method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        return await with_retry(call, operation)

    async def _list_all(self, path: str, operation: str, params: dict[str, Any]) -> list[dict]:
        items: list[dict] = []
        query = dict(params)
        while True:
            payload = await self._request("GET", path, operation, params=query) or {}
            items.extend(payload.get("items") or [])
            page_token = payload.get("nextPageToken")
            if not page_token:
                return items
            query["pageToken"] = page_token

    async def get_tasks(self, task_list_id: str, include_completed: bool = False) -> list[dict]:
        params = {
            "maxResults": 100,
            "showCompleted": str(include_completed).lower(),
            "showHidden": str(include_completed).lower(),
            "showDeleted": "false",
        }
        tasks = await self._list_all(f"/lists/{task_list_id}/tasks", "getTasks", params)
        tasks = [task for task in tasks if task.get("id") and task.get("title")]
        logger.debug(f"Found {len(tasks)} tasks in list {task_list_id}")
        return tasks

    async def delete_task(self, task_list_id: str, task_id: str) -> None:
        logger.debug(f"Deleting Google task: {task_id} from list {task_list_id}")
        await self._request("DELETE", f"/lists/{task_list_id}/tasks/{task_id}", "deleteTask")


class GoogleTasksSource(ReadOnlySource):
    """Google Tasks as a one-way source."""

    kind = ItemKind.GOOGLE_TASK

    def __init__(self, client: GoogleTasksClient):
        self.client = client

    async def list_items(self, scope: str, include_completed: bool = False) -> list[RemoteItem]:
        tasks = await self.client.get_tasks(scope, include_completed)
        items = [item_from_payload(task, scope) for task in tasks]
        if not include_completed:
            items = [item for item in items if not item.completed]
        return items

    async def delete_item(self, scope: str, item: RemoteItem) -> None:
        await self.client.delete_task(scope, item.native_id)

    async def close(self) -> None:
        await self.client.close()
