"""Base classes for source platforms."""

from abc import ABC, abstractmethod

from taskbridge.core.models import ItemKind, RemoteFields, RemoteItem


class ReadOnlySource(ABC):
    """A platform that is only read from (apart from delete-after-sync).

    Implementations normalize every payload into :class:`RemoteItem`; the
    reconcilers never see raw API responses.
    """

    kind: ItemKind

    @abstractmethod
    async def list_items(self, scope: str, include_completed: bool = False) -> list[RemoteItem]:
        """Fetch every item in a scope (a list ID, or "all")."""

    @abstractmethod
    async def delete_item(self, scope: str, item: RemoteItem) -> None:
        """Delete an item from the platform."""

    async def close(self) -> None:
        """Release network resources."""


class WritableSource(ReadOnlySource):
    """A platform that also accepts writes originating from the mirror."""

    @abstractmethod
    async def create_item(self, scope: str, fields: RemoteFields) -> RemoteItem:
        """Create an item and return it as stored by the platform."""

    @abstractmethod
    async def update_item(self, scope: str, native_id: str, fields: RemoteFields) -> RemoteItem:
        """Update title/notes/due of an item and return the new state."""

    @abstractmethod
    async def set_completion(self, scope: str, native_id: str, completed: bool) -> RemoteItem:
        """Complete or reopen an item and return the new state."""

    @abstractmethod
    async def current_user_id(self) -> str | None:
        """ID of the authenticated identity, used by the assignment filter."""

    @abstractmethod
    async def get_item(self, scope: str, native_id: str) -> RemoteItem | None:
        """Fetch one item regardless of its status. None if it no longer exists."""
