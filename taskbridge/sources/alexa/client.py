"""Alexa reminders and shopping list client and source adapters.

Amazon's Alexa endpoints are undocumented and return several shapes for the
same resource depending on account region and API generation. Everything is
normalized here so the reconcilers only ever see :class:`RemoteItem`.
"""

import json
import logging
from pathlib import Path
from typing import Any

import httpx

from taskbridge.core.errors import AuthenticationError
from taskbridge.core.models import ItemKind, RemoteItem
from taskbridge.sources.base import ReadOnlySource
from taskbridge.utils.dates import from_epoch_millis
from taskbridge.utils.retry import with_retry

logger = logging.getLogger(__name__)

REMINDER_ON = "ON"
REMINDER_OFF = "OFF"
DEFAULT_REMINDER_LABEL = "Alexa Reminder"

SHOPPING_LIST_NAMES = (
    "shopping",
    "shop",
    "alexa shopping list",
    "einkaufsliste",
    "liste de courses",
    "lista de compras",
    "lista della spesa",
)


def load_cookie(cookie_path: Path) -> tuple[str, str | None]:
    """
    Read the cookie file written by the Alexa login proxy.

    Returns:
        Tuple of (cookie header, csrf token)

    Raises:
        AuthenticationError: If the file is missing or has no cookie
    """
    if not cookie_path.exists():
        raise AuthenticationError(f"Alexa cookie file not found: {cookie_path}")
    try:
        with open(cookie_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise AuthenticationError(f"Cannot read Alexa cookie file {cookie_path}: {e}") from e

    # alexa-remote style files nest the data under formerRegistrationData
    if isinstance(data, dict) and isinstance(data.get("formerRegistrationData"), dict):
        data = data["formerRegistrationData"]
    if isinstance(data, str):
        return data, None

    cookie = data.get("localCookie") or data.get("cookie")
    if not cookie:
        raise AuthenticationError(f"Alexa cookie file {cookie_path} contains no cookie")
    csrf = data.get("csrf")
    if not csrf:
        for part in cookie.split(";"):
            name, _, value = part.strip().partition("=")
            if name == "csrf":
                csrf = value
                break
    return cookie, csrf


def reminder_from_payload(data: dict[str, Any], device_names: dict[str, str]) -> RemoteItem:
    """Normalize an Alexa notification of type Reminder."""
    status = data.get("status") or REMINDER_ON
    serial = data.get("deviceSerialNumber")
    device_name = data.get("deviceName") or (device_names.get(serial) if serial else None)
    return RemoteItem(
        native_id=str(data.get("id") or data.get("notificationIndex") or ""),
        title=data.get("reminderLabel") or DEFAULT_REMINDER_LABEL,
        list_id="all",
        status=status,
        completed=status == REMINDER_OFF,
        due=from_epoch_millis(data.get("alarmTime")),
        modified_at=from_epoch_millis(data.get("lastUpdatedDate")),
        extra={"device_name": device_name, "device_serial_number": serial},
    )


def list_from_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize an Alexa list description."""
    count: Any = data.get("totalActiveItemsCount") or (data.get("aggregatedAttributes") or {}).get(
        "totalActiveItemsCount"
    )
    item_count = 0
    if isinstance(count, str):
        try:
            item_count = int(json.loads(count).get("count", 0))
        except (ValueError, AttributeError):
            item_count = 0
    elif isinstance(count, int):
        item_count = count
    return {
        "list_id": str(data.get("listId") or data.get("listInfoId") or ""),
        "name": str(data.get("listName") or data.get("name") or data.get("listType") or ""),
        "list_type": str(data.get("listType") or ""),
        "default_list": bool(data.get("defaultList")),
        "item_count": item_count,
    }


def shopping_item_from_payload(data: dict[str, Any], list_id: str) -> RemoteItem:
    """Normalize an Alexa list item (v1 and v2 field names)."""
    completed_raw = data.get("completed")
    completed = completed_raw is True or completed_raw == "true" or data.get("itemStatus") == "COMPLETED"
    created = data.get("createdDateTime") or data.get("createAt") or data.get("createdDate")
    updated = data.get("updatedDateTime") or data.get("updateAt") or data.get("updatedDate")
    return RemoteItem(
        native_id=str(data.get("itemId") or data.get("id") or data.get("listItemId") or ""),
        title=str(data.get("itemName") or data.get("value") or ""),
        list_id=list_id,
        status="completed" if completed else "active",
        completed=completed,
        modified_at=from_epoch_millis(updated) if updated is not None else None,
        extra={
            "version": int(data.get("version") or 1),
            "created_at": from_epoch_millis(created) if created is not None else None,
        },
    )


def _unwrap(payload: Any, *keys: str) -> list[dict]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


class AlexaClient:
    """Async client for the Alexa web endpoints used by the Alexa app."""

    def __init__(
        self,
        cookie_path: Path,
        amazon_page: str = "amazon.com",
        *,
        max_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            cookie_path: Cookie file produced by the login proxy
            amazon_page: Amazon domain of the account (amazon.com, amazon.de...)
            max_attempts: Attempts per call before giving up
            transport: Optional httpx transport (used by tests)
        """
        self.cookie_path = cookie_path
        self.amazon_page = amazon_page
        self.max_attempts = max_attempts
        self.alexa_url = f"https://alexa.{amazon_page}"
        self.lists_url = f"https://www.{amazon_page}/alexashoppinglists/api/v2"
        self._client = httpx.AsyncClient(timeout=30.0, transport=transport)
        self._headers: dict[str, str] | None = None

    async def close(self) -> None:
        await self._client.aclose()

    def _get_headers(self) -> dict[str, str]:
        if self._headers is None:
            cookie, csrf = load_cookie(self.cookie_path)
            self._headers = {
                "Cookie": cookie,
                "Accept": "application/json; charset=utf-8",
                "Content-Type": "application/json; charset=utf-8",
                "Referer": f"https://alexa.{self.amazon_page}/spa/index.html",
            }
            if csrf:
                self._headers["csrf"] = csrf
        return self._headers

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> Any:
        async def call() -> Any:
            response = await self._client.request(method, url, headers=self._get_headers(), **kwargs)
            if response.status_code == 401:
                raise AuthenticationError("Alexa rejected the stored cookie; log in again")
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        return await with_retry(call, operation, max_attempts=self.max_attempts)

    # Reminders

    async def get_device_names(self) -> dict[str, str]:
        payload = await self._request(
            "GET", f"{self.alexa_url}/api/devices-v2/device", "getAlexaDevices", params={"cached": "false"}
        )
        return {
            device["serialNumber"]: device.get("accountName") or device["serialNumber"]
            for device in _unwrap(payload, "devices")
            if device.get("serialNumber")
        }

    async def get_reminders(self) -> list[RemoteItem]:
        """Get all reminders (alarms and timers are filtered out)."""
        payload = await self._request(
            "GET", f"{self.alexa_url}/api/notifications", "getAlexaReminders", params={"cached": "false"}
        )
        notifications = _unwrap(payload, "notifications")
        if not notifications:
            logger.debug("No notifications found")
            return []

        try:
            device_names = await self.get_device_names()
        except Exception as e:
            logger.debug(f"Could not resolve Alexa device names: {e}")
            device_names = {}

        reminders = [
            reminder_from_payload(entry, device_names)
            for entry in notifications
            if entry.get("type") == "Reminder"
        ]
        logger.debug(f"Found {len(reminders)} Alexa reminders")
        return reminders

    async def delete_reminder(self, notification_id: str) -> None:
        await self._request("DELETE", f"{self.alexa_url}/api/notifications/{notification_id}", "deleteAlexaReminder")
        logger.debug(f"Deleted Alexa notification: {notification_id}")

    # Lists

    async def get_lists(self) -> list[dict[str, Any]]:
        payload = await self._request(
            "POST",
            f"{self.lists_url}/lists/fetch",
            "getAlexaLists",
            json={"listAttributesToAggregate": [{"type": "totalActiveItemsCount"}], "listOwnershipType": None},
        )
        lists = [list_from_payload(entry) for entry in _unwrap(payload, "listInfoList", "lists")]
        logger.debug(f"Found {len(lists)} Alexa lists")
        return lists

    async def get_shopping_list_id(self) -> str | None:
        """
        Find the shopping list.

        Looks for ``listType == "SHOP"`` first, then falls back to known
        (localized) shopping list names.
        """
        lists = await self.get_lists()
        shopping = next((entry for entry in lists if entry["list_type"] == "SHOP"), None)
        if shopping is None:
            for entry in lists:
                name = entry["name"].lower()
                if name in SHOPPING_LIST_NAMES or "shopping" in name:
                    shopping = entry
                    break

        if shopping is None:
            available = ", ".join(f"{entry['name']} ({entry['list_type']})" for entry in lists)
            logger.warning(f"Shopping list not found. Available lists: {available or 'none'}")
            return None
        return shopping["list_id"] or None

    async def get_list_items(self, list_id: str, include_completed: bool = False) -> list[RemoteItem]:
        body: dict[str, Any] = {}
        if not include_completed:
            body["listItemStateFilter"] = {"type": "active"}
        payload = await self._request(
            "POST",
            f"{self.lists_url}/lists/{list_id}/items/fetch",
            "getAlexaListItems",
            params={"limit": 100},
            json=body,
        )
        items = [shopping_item_from_payload(entry, list_id) for entry in _unwrap(payload, "itemInfoList", "listItems")]
        if not include_completed:
            items = [item for item in items if not item.completed]
        logger.debug(f"Found {len(items)} items in list {list_id}")
        return items

    async def delete_list_item(self, list_id: str, item_id: str, version: int) -> None:
        await self._request(
            "DELETE",
            f"{self.lists_url}/lists/{list_id}/items/{item_id}",
            "deleteAlexaListItem",
            params={"version": str(version)},
        )
        logger.debug(f"Deleted list item: {item_id} from list {list_id}")


class AlexaRemindersSource(ReadOnlySource):
    """Alexa reminders as a one-way source. The only scope is "all"."""

    kind = ItemKind.ALEXA_REMINDER

    def __init__(self, client: AlexaClient):
        self.client = client

    async def list_items(self, scope: str, include_completed: bool = False) -> list[RemoteItem]:
        reminders = await self.client.get_reminders()
        if not include_completed:
            reminders = [item for item in reminders if item.status == REMINDER_ON]
        return reminders

    async def delete_item(self, scope: str, item: RemoteItem) -> None:
        await self.client.delete_reminder(item.native_id)

    async def close(self) -> None:
        await self.client.close()


class AlexaShoppingSource(ReadOnlySource):
    """The Alexa shopping list as a one-way source.

    The scope passed in by the engine is the resolved shopping list ID.
    """

    kind = ItemKind.ALEXA_SHOPPING

    def __init__(self, client: AlexaClient):
        self.client = client

    async def resolve_list_id(self) -> str | None:
        return await self.client.get_shopping_list_id()

    async def list_items(self, scope: str, include_completed: bool = False) -> list[RemoteItem]:
        return await self.client.get_list_items(scope, include_completed)

    async def delete_item(self, scope: str, item: RemoteItem) -> None:
        await self.client.delete_list_item(scope, item.native_id, int(item.extra.get("version") or 1))

    async def close(self) -> None:
        await self.client.close()
