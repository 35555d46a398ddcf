"""Field translators between source items and Todoist tasks.

Pure functions only: no I/O, no clock.
"""

from taskbridge.core.detector import canonical_status, mirrored_hash, remote_hash, serialize_tags
from taskbridge.core.models import (
    ItemKind,
    MirroredTask,
    RemoteFields,
    RemoteItem,
    Snapshot,
    TaskCreate,
    TaskUpdate,
)
from taskbridge.utils.dates import extract_date_only, format_due_string

CLEAR_DUE = "no date"


class OneWayMapper:
    """Default mapping: title → content, notes → description, due → due date."""

    kind: ItemKind

    def content(self, item: RemoteItem) -> str:
        return item.title

    def description(self, item: RemoteItem) -> str | None:
        return item.notes

    def to_create(
        self,
        item: RemoteItem,
        project_id: str,
        tags: list[str],
        parent_mirrored_id: str | None = None,
    ) -> TaskCreate:
        return TaskCreate(
            content=self.content(item),
            project_id=project_id,
            description=self.description(item),
            parent_id=parent_mirrored_id,
            due_date=extract_date_only(item.due),
            labels=list(tags),
        )

    def to_update(self, item: RemoteItem, snapshot: Snapshot) -> TaskUpdate:
        """Only the fields that differ from the snapshot."""
        update = TaskUpdate()
        if item.title != snapshot.title:
            update.content = self.content(item)
        if (item.notes or "") != (snapshot.notes or ""):
            update.description = self.description(item) or ""
        new_due = extract_date_only(item.due)
        if new_due != extract_date_only(snapshot.due_date):
            if new_due:
                update.due_date = new_due
            else:
                update.due_string = CLEAR_DUE
        return update

    def stored_fields(self, item: RemoteItem) -> dict:
        """Snapshot column values describing the item's current state."""
        return {
            "list_id": item.list_id,
            "title": item.title,
            "notes": item.notes,
            "status": item.status,
            "due_date": item.due,
            "remote_modified_at": item.modified_at,
            "extra": dict(item.extra),
        }

    def to_snapshot(
        self,
        item: RemoteItem,
        mirrored_id: str | None,
        tags: list[str],
        parent_native_id: str | None = None,
    ) -> Snapshot:
        return Snapshot(
            kind=self.kind.value,
            native_id=item.native_id,
            mirrored_id=mirrored_id,
            parent_native_id=parent_native_id,
            applied_tags=serialize_tags(tags),
            **self.stored_fields(item),
        )


class GoogleTaskMapper(OneWayMapper):
    kind = ItemKind.GOOGLE_TASK


class AlexaReminderMapper(OneWayMapper):
    """Reminders keep their trigger time, so the due is sent as a due string."""

    kind = ItemKind.ALEXA_REMINDER

    def description(self, item: RemoteItem) -> str | None:
        device_name = item.extra.get("device_name")
        return f"From Alexa device: {device_name}" if device_name else None

    def to_create(self, item, project_id, tags, parent_mirrored_id=None) -> TaskCreate:
        params = super().to_create(item, project_id, tags, parent_mirrored_id)
        params.due_date = None
        params.due_string = format_due_string(item.due)
        return params

    def to_update(self, item: RemoteItem, snapshot: Snapshot) -> TaskUpdate:
        update = TaskUpdate()
        if item.title != snapshot.title:
            update.content = self.content(item)
        if (item.due or None) != (snapshot.due_date or None):
            update.due_string = format_due_string(item.due) or CLEAR_DUE
        if item.extra.get("device_name") != snapshot.extra.get("device_name"):
            update.description = self.description(item) or ""
        return update


class AlexaShoppingMapper(OneWayMapper):
    kind = ItemKind.ALEXA_SHOPPING

    def content(self, item: RemoteItem) -> str:
        return item.title or "Shopping Item"

    def to_update(self, item: RemoteItem, snapshot: Snapshot) -> TaskUpdate:
        update = TaskUpdate()
        if item.title != snapshot.title:
            update.content = self.content(item)
        return update


MAPPERS: dict[ItemKind, OneWayMapper] = {
    ItemKind.GOOGLE_TASK: GoogleTaskMapper(),
    ItemKind.ALEXA_REMINDER: AlexaReminderMapper(),
    ItemKind.ALEXA_SHOPPING: AlexaShoppingMapper(),
}


# Bi-directional (Microsoft To-Do)


def remote_to_todoist_create(item: RemoteItem, project_id: str, tags: list[str]) -> TaskCreate:
    return TaskCreate(
        content=item.title,
        project_id=project_id,
        description=item.notes,
        due_date=extract_date_only(item.due),
        labels=list(tags),
    )


def remote_to_todoist_update(item: RemoteItem, task: MirroredTask) -> TaskUpdate:
    """Fields of the Todoist task that differ from the remote item."""
    update = TaskUpdate()
    if item.title != task.content:
        update.content = item.title
    if (item.notes or "") != (task.description or ""):
        update.description = item.notes or ""
    new_due = extract_date_only(item.due)
    if new_due != task.due_date:
        if new_due:
            update.due_date = new_due
        else:
            update.due_string = CLEAR_DUE
    return update


def todoist_to_remote_fields(task: MirroredTask, item: RemoteItem | None = None) -> RemoteFields:
    """Fields to write to the native platform. With ``item``, only the differences."""
    fields = RemoteFields()
    if item is None or task.content != item.title:
        fields.title = task.content
    if item is None:
        fields.notes = task.description or None
    elif (task.description or "") != (item.notes or ""):
        fields.notes = task.description or ""
    if item is None or task.due_date != extract_date_only(item.due):
        fields.due = task.due_date
        fields.clear_due = item is not None and not task.due_date
    return fields


def bidirectional_snapshot_from_remote(
    item: RemoteItem,
    mirrored_id: str | None,
    tags: list[str],
    mirrored_modified_at: str | None,
) -> Snapshot:
    return Snapshot(
        kind=ItemKind.MICROSOFT_TASK.value,
        native_id=item.native_id,
        list_id=item.list_id,
        mirrored_id=mirrored_id,
        title=item.title,
        notes=item.notes,
        status=canonical_status(item.completed),
        due_date=extract_date_only(item.due),
        remote_modified_at=item.modified_at,
        mirrored_modified_at=mirrored_modified_at,
        content_hash=remote_hash(item),
        applied_tags=serialize_tags(tags),
    )


def bidirectional_snapshot_from_mirror(
    task: MirroredTask,
    item: RemoteItem,
    tags: list[str],
    mirrored_modified_at: str | None,
) -> Snapshot:
    """State after the mirror's content was written to the native item."""
    return Snapshot(
        kind=ItemKind.MICROSOFT_TASK.value,
        native_id=item.native_id,
        list_id=item.list_id,
        mirrored_id=task.id,
        title=task.content,
        notes=task.description or None,
        status=canonical_status(task.is_completed),
        due_date=task.due_date,
        remote_modified_at=item.modified_at,
        mirrored_modified_at=mirrored_modified_at,
        content_hash=mirrored_hash(task),
        applied_tags=serialize_tags(tags),
    )
