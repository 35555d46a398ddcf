"""Canonical data models shared by sources, reconcilers and the snapshot store."""

import json
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any


class ItemKind(str, Enum):
    """Snapshot partition. One value per source and item type."""

    GOOGLE_TASK = "google_task"
    ALEXA_REMINDER = "alexa_reminder"
    ALEXA_SHOPPING = "alexa_shopping"
    MICROSOFT_TASK = "microsoft_task"


class Winner(str, Enum):
    """Outcome of conflict resolution for a matched remote/mirrored pair."""

    REMOTE = "remote"
    MIRRORED = "mirrored"
    NONE = "none"


@dataclass
class RemoteItem:
    """One item fetched from a source platform, already normalized.

    ``status`` keeps the platform's own vocabulary (``needsAction``, ``ON``,
    ``notStarted``...) while ``completed`` is the platform independent flag.
    ``due`` is a ``YYYY-MM-DD`` date for date-only platforms and an ISO
    datetime for Alexa reminders.
    """

    native_id: str
    title: str
    list_id: str = ""
    notes: str | None = None
    status: str = ""
    completed: bool = False
    due: str | None = None
    modified_at: str | None = None
    parent_id: str | None = None
    owner_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class MirroredTask:
    """A task in the Todoist mirror."""

    id: str
    content: str
    project_id: str | None = None
    description: str = ""
    labels: list[str] = field(default_factory=list)
    due_date: str | None = None
    due_datetime: str | None = None
    parent_id: str | None = None
    is_completed: bool = False


@dataclass
class TaskCreate:
    """Parameters for creating a Todoist task."""

    content: str
    project_id: str | None = None
    description: str | None = None
    parent_id: str | None = None
    due_date: str | None = None
    due_string: str | None = None
    labels: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": self.content}
        if self.project_id:
            payload["project_id"] = self.project_id
        if self.description:
            payload["description"] = self.description
        if self.parent_id:
            payload["parent_id"] = self.parent_id
        if self.due_string:
            payload["due_string"] = self.due_string
        elif self.due_date:
            payload["due_date"] = self.due_date
        if self.labels:
            payload["labels"] = list(self.labels)
        return payload


@dataclass
class TaskUpdate:
    """Parameters for updating a Todoist task. ``None`` fields are not sent."""

    content: str | None = None
    description: str | None = None
    due_date: str | None = None
    due_string: str | None = None
    labels: list[str] | None = None

    def is_empty(self) -> bool:
        return not self.to_payload()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.content is not None:
            payload["content"] = self.content
        if self.description is not None:
            payload["description"] = self.description
        if self.due_string is not None:
            payload["due_string"] = self.due_string
        elif self.due_date is not None:
            payload["due_date"] = self.due_date
        if self.labels is not None:
            payload["labels"] = list(self.labels)
        return payload


@dataclass
class RemoteFields:
    """Fields written to a writable source when the mirror wins."""

    title: str | None = None
    notes: str | None = None
    due: str | None = None
    clear_due: bool = False


@dataclass
class Snapshot:
    """Last-known mirrored state of one native item."""

    kind: str
    native_id: str
    list_id: str = ""
    mirrored_id: str | None = None
    parent_native_id: str | None = None
    title: str = ""
    notes: str | None = None
    status: str = ""
    due_date: str | None = None
    remote_modified_at: str | None = None
    mirrored_modified_at: str | None = None
    content_hash: str | None = None
    applied_tags: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    synced_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Snapshot":
        known = {f.name for f in fields(cls)}
        data = {key: value for key, value in row.items() if key in known}
        extra = data.get("extra")
        if isinstance(extra, str):
            try:
                data["extra"] = json.loads(extra) or {}
            except json.JSONDecodeError:
                data["extra"] = {}
        elif extra is None:
            data["extra"] = {}
        return cls(**data)


@dataclass
class SyncResult:
    """Tally emitted by one reconcile pass. Stable contract for monitoring."""

    success: bool = True
    created: int = 0
    updated: int = 0
    deleted: int = 0
    completed: int = 0
    deleted_from_source: int = 0
    tags_updated: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(
            getattr(self, name) for name in ("created", "updated", "deleted", "completed", "deleted_from_source", "tags_updated")
        )

    def merge(self, other: "SyncResult") -> None:
        """Add another result's counters into this one."""
        for f in fields(self):
            if f.name == "success":
                self.success = self.success and other.success
            elif f.name == "errors":
                self.errors.extend(other.errors)
            elif hasattr(other, f.name):
                setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BidirectionalSyncResult(SyncResult):
    """Tally for a bi-directional source.

    ``created``/``updated``/``completed``/``deleted`` count effects on the
    mirror, the ``*_in_source`` counters count effects on the native platform
    and ``skipped`` counts items dropped by the assignment filter.
    """

    created_in_source: int = 0
    updated_in_source: int = 0
    completed_in_source: int = 0
    skipped: int = 0

    @property
    def has_changes(self) -> bool:
        return super().has_changes or any(
            (self.created_in_source, self.updated_in_source, self.completed_in_source)
        )
