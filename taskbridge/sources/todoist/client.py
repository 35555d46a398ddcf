"""Todoist API client (the mirrored service)."""

import logging
from typing import Any

import httpx

from taskbridge.core.errors import ConfigurationError, ScopeResolutionError
from taskbridge.core.models import MirroredTask, TaskCreate, TaskUpdate
from taskbridge.utils.dates import extract_date_only
from taskbridge.utils.retry import with_retry

logger = logging.getLogger(__name__)

INBOX_SENTINEL = "inbox"


def task_from_payload(data: dict[str, Any]) -> MirroredTask:
    """Normalize a Todoist task payload (unified v1 or legacy REST v2)."""
    due = data.get("due") or {}
    due_raw = due.get("date")
    due_datetime = due.get("datetime")
    if not due_datetime and due_raw and "T" in due_raw:
        due_datetime = due_raw
    completed = data.get("checked")
    if completed is None:
        completed = data.get("is_completed", False)
    return MirroredTask(
        id=str(data["id"]),
        content=data.get("content") or "",
        project_id=str(data["project_id"]) if data.get("project_id") else None,
        description=data.get("description") or "",
        labels=list(data.get("labels") or []),
        due_date=extract_date_only(due_raw),
        due_datetime=due_datetime,
        parent_id=str(data["parent_id"]) if data.get("parent_id") else None,
        is_completed=bool(completed),
    )


class TodoistClient:
    """
    Async client for the Todoist REST API.

    All calls are retried with bounded exponential backoff on transient
    failures; callers only see the final success or failure.
    """

    def __init__(
        self,
        api_token: str | None,
        base_url: str = "https://api.todoist.com/api/v1",
        *,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Todoist client.

        Args:
            api_token: Todoist API token
            base_url: API base URL
            max_attempts: Attempts per call before giving up
            initial_delay: First backoff delay in seconds
            max_delay: Backoff cap in seconds
            transport: Optional httpx transport (used by tests)

        Raises:
            ConfigurationError: If no token is configured
        """
        if not api_token:
            raise ConfigurationError("Todoist API token is not configured")
        self.base_url = base_url.rstrip("/")
        self._retry = {"max_attempts": max_attempts, "initial_delay": initial_delay, "max_delay": max_delay}
        self._inbox_project_id: str | None = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=30.0,
            headers={"Authorization": f"Bearer {api_token}"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        async def call() -> Any:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        return await with_retry(call, operation, **self._retry)

    async def _get_paginated(self, path: str, operation: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Collect every page of a listing (cursor-paginated, or a bare list)."""
        items: list[dict] = []
        query = dict(params or {})
        while True:
            payload = await self._request("GET", path, operation, params=query)
            if isinstance(payload, list):
                items.extend(payload)
                return items
            items.extend((payload or {}).get("results", []))
            cursor = (payload or {}).get("next_cursor")
            if not cursor:
                return items
            query["cursor"] = cursor

    # Projects

    async def get_projects(self) -> list[dict]:
        return await self._get_paginated("/projects", "getProjects")

    async def get_inbox_project_id(self) -> str:
        """
        Find the Inbox project.

        Raises:
            ScopeResolutionError: If the account has no inbox project
        """
        if self._inbox_project_id:
            return self._inbox_project_id
        for project in await self.get_projects():
            if project.get("inbox_project") or project.get("is_inbox_project"):
                self._inbox_project_id = str(project["id"])
                return self._inbox_project_id
        raise ScopeResolutionError("Todoist inbox project not found")

    async def resolve_project_id(self, project_id: str) -> str:
        """Resolve ``"inbox"`` (any case) to the inbox project ID; pass other IDs through."""
        if project_id.strip().lower() == INBOX_SENTINEL:
            return await self.get_inbox_project_id()
        return project_id

    # Tasks

    async def get_project_tasks(self, project_id: str) -> list[MirroredTask]:
        """Get the active tasks of a project."""
        payloads = await self._get_paginated("/tasks", "getProjectTasks", {"project_id": project_id})
        return [task_from_payload(payload) for payload in payloads]

    async def list_container_item_ids(self, project_id: str) -> set[str]:
        """IDs of the active tasks in a project."""
        return {task.id for task in await self.get_project_tasks(project_id)}

    async def get_task(self, task_id: str) -> MirroredTask | None:
        """
        Get a single task, completed or not.

        Returns:
            The task, or None if Todoist reports it as missing
        """
        try:
            payload = await self._request("GET", f"/tasks/{task_id}", "getTask")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        if not payload or payload.get("is_deleted"):
            return None
        return task_from_payload(payload)

    async def create_task(self, params: TaskCreate) -> MirroredTask:
        logger.debug(f"Creating Todoist task: {params.content}")
        payload = await self._request("POST", "/tasks", "createTask", json=params.to_payload())
        return task_from_payload(payload)

    async def update_task(self, task_id: str, params: TaskUpdate) -> MirroredTask | None:
        logger.debug(f"Updating Todoist task {task_id}")
        payload = await self._request("POST", f"/tasks/{task_id}", "updateTask", json=params.to_payload())
        return task_from_payload(payload) if payload else None

    async def complete_task(self, task_id: str) -> None:
        logger.debug(f"Completing Todoist task {task_id}")
        await self._request("POST", f"/tasks/{task_id}/close", "completeTask")

    async def reopen_task(self, task_id: str) -> None:
        logger.debug(f"Reopening Todoist task {task_id}")
        await self._request("POST", f"/tasks/{task_id}/reopen", "reopenTask")

    async def delete_task(self, task_id: str) -> None:
        logger.debug(f"Deleting Todoist task {task_id}")
        await self._request("DELETE", f"/tasks/{task_id}", "deleteTask")
