"""Microsoft To-Do (Graph API) client and source adapter."""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

from taskbridge.core.errors import ScopeResolutionError
from taskbridge.core.models import ItemKind, RemoteFields, RemoteItem
from taskbridge.sources.base import WritableSource
from taskbridge.utils.dates import date_to_utc_datetime, extract_date_only
from taskbridge.utils.retry import with_retry

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.microsoft.com/v1.0"

STATUS_COMPLETED = "completed"
STATUS_NOT_STARTED = "notStarted"


def item_from_payload(data: dict[str, Any], list_id: str) -> RemoteItem:
    """Normalize a Graph ``todoTask`` resource."""
    status = data.get("status") or STATUS_NOT_STARTED
    body = (data.get("body") or {}).get("content") or None
    due = (data.get("dueDateTime") or {}).get("dateTime")
    owner = ((data.get("createdBy") or {}).get("user") or {}).get("id")
    return RemoteItem(
        native_id=data["id"],
        title=data.get("title") or "",
        list_id=list_id,
        notes=body,
        status=status,
        completed=status == STATUS_COMPLETED,
        due=extract_date_only(due),
        modified_at=data.get("lastModifiedDateTime"),
        owner_id=owner,
    )


def fields_to_payload(fields: RemoteFields) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if fields.title is not None:
        payload["title"] = fields.title
    if fields.notes is not None:
        payload["body"] = {"content": fields.notes, "contentType": "text"}
    if fields.due:
        payload["dueDateTime"] = {"dateTime": date_to_utc_datetime(fields.due), "timeZone": "UTC"}
    elif fields.clear_due:
        payload["dueDateTime"] = None
    return payload


class MicrosoftTodoClient:
    """Async client for the Graph ``/me/todo`` endpoints."""

    def __init__(
        self,
        get_access_token: Callable[[], Awaitable[str]],
        *,
        base_url: str = GRAPH_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._get_access_token = get_access_token
        self._client = httpx.AsyncClient(timeout=30.0, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, endpoint: str, operation: str, **kwargs: Any) -> Any:
        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"

        async def call() -> Any:
            token = await self._get_access_token()
            response = await self._client.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                **kwargs,
            )
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

        return await with_retry(call, operation)

    async def _get_all(self, endpoint: str, operation: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Follow ``@odata.nextLink`` until every page is read."""
        results: list[dict] = []
        payload = await self._request("GET", endpoint, operation, params=params)
        while True:
            results.extend(payload.get("value") or [])
            next_link = payload.get("@odata.nextLink")
            if not next_link:
                return results
            payload = await self._request("GET", next_link, operation)

    async def get_lists(self) -> list[dict]:
        lists = await self._get_all("/me/todo/lists", "getLists")
        logger.debug(f"Found {len(lists)} Microsoft To-Do lists")
        return lists

    async def get_list_by_name(self, name: str) -> dict | None:
        wanted = name.lower()
        for entry in await self.get_lists():
            if (entry.get("displayName") or "").lower() == wanted:
                return entry
        return None

    async def get_tasks(self, list_id: str, include_completed: bool = False) -> list[dict]:
        params = None if include_completed else {"$filter": "status ne 'completed'"}
        tasks = await self._get_all(f"/me/todo/lists/{list_id}/tasks", "getTasks", params)
        logger.debug(f"Found {len(tasks)} tasks in list {list_id}")
        return tasks

    async def get_task(self, list_id: str, task_id: str) -> dict | None:
        """Get one task, completed or not. None on 404."""
        try:
            return await self._request("GET", f"/me/todo/lists/{list_id}/tasks/{task_id}", "getTask")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise

    async def create_task(self, list_id: str, payload: dict[str, Any]) -> dict:
        logger.debug(f"Creating Microsoft task in list {list_id}: {payload.get('title')}")
        return await self._request("POST", f"/me/todo/lists/{list_id}/tasks", "createTask", json=payload)

    async def update_task(self, list_id: str, task_id: str, payload: dict[str, Any]) -> dict:
        logger.debug(f"Updating Microsoft task {task_id}")
        return await self._request("PATCH", f"/me/todo/lists/{list_id}/tasks/{task_id}", "updateTask", json=payload)

    async def complete_task(self, list_id: str, task_id: str) -> dict:
        return await self.update_task(
            list_id,
            task_id,
            {
                "status": STATUS_COMPLETED,
                "completedDateTime": {"dateTime": datetime.now(timezone.utc).isoformat(), "timeZone": "UTC"},
            },
        )

    async def reopen_task(self, list_id: str, task_id: str) -> dict:
        return await self.update_task(list_id, task_id, {"status": STATUS_NOT_STARTED, "completedDateTime": None})

    async def delete_task(self, list_id: str, task_id: str) -> None:
        logger.debug(f"Deleting Microsoft task {task_id}")
        await self._request("DELETE", f"/me/todo/lists/{list_id}/tasks/{task_id}", "deleteTask")

    async def get_current_user(self) -> dict:
        return await self._request("GET", "/me", "getCurrentUser")


class MicrosoftTodoSource(WritableSource):
    """Microsoft To-Do as a bi-directional source. Scopes are list IDs."""

    kind = ItemKind.MICROSOFT_TASK

    def __init__(self, client: MicrosoftTodoClient):
        self.client = client
        self._user_id: str | None = None

    async def resolve_list_id(self, source_list_id: str | None, list_name: str | None) -> str:
        """
        Resolve a configured list to its Graph ID.

        Raises:
            ScopeResolutionError: If the list cannot be found
        """
        if source_list_id:
            return source_list_id
        if list_name:
            found = await self.client.get_list_by_name(list_name)
            if found:
                return found["id"]
            raise ScopeResolutionError(f"Microsoft To-Do list not found: {list_name}")
        raise ScopeResolutionError("Microsoft To-Do mapping needs source_list_id or list_name")

    async def list_items(self, scope: str, include_completed: bool = False) -> list[RemoteItem]:
        return [item_from_payload(task, scope) for task in await self.client.get_tasks(scope, include_completed)]

    async def delete_item(self, scope: str, item: RemoteItem) -> None:
        await self.client.delete_task(scope, item.native_id)

    async def get_item(self, scope: str, native_id: str) -> RemoteItem | None:
        task = await self.client.get_task(scope, native_id)
        return item_from_payload(task, scope) if task else None

    async def create_item(self, scope: str, fields: RemoteFields) -> RemoteItem:
        created = await self.client.create_task(scope, fields_to_payload(fields))
        return item_from_payload(created, scope)

    async def update_item(self, scope: str, native_id: str, fields: RemoteFields) -> RemoteItem:
        updated = await self.client.update_task(scope, native_id, fields_to_payload(fields))
        return item_from_payload(updated, scope)

    async def set_completion(self, scope: str, native_id: str, completed: bool) -> RemoteItem:
        if completed:
            updated = await self.client.complete_task(scope, native_id)
        else:
            updated = await self.client.reopen_task(scope, native_id)
        return item_from_payload(updated, scope)

    async def current_user_id(self) -> str | None:
        if self._user_id is None:
            user = await self.client.get_current_user()
            self._user_id = user.get("id")
        return self._user_id

    async def close(self) -> None:
        await self.client.close()
