"""Tests for the field mappers."""

from taskbridge.core.detector import content_hash
from taskbridge.core.mappers import (
    MAPPERS,
    bidirectional_snapshot_from_mirror,
    bidirectional_snapshot_from_remote,
    remote_to_todoist_update,
    todoist_to_remote_fields,
)
from taskbridge.core.models import ItemKind, MirroredTask, RemoteItem, Snapshot


def test_google_create():
    item = RemoteItem(native_id="g1", title="Buy milk", notes="2 litres", due="2024-01-15")
    params = MAPPERS[ItemKind.GOOGLE_TASK].to_create(item, "p1", ["grocery"], parent_mirrored_id="t0")

    assert params.to_payload() == {
        "content": "Buy milk",
        "project_id": "p1",
        "description": "2 litres",
        "parent_id": "t0",
        "due_date": "2024-01-15",
        "labels": ["grocery"],
    }


def test_google_snapshot_keeps_native_fields():
    item = RemoteItem(
        native_id="g1",
        title="Buy milk",
        list_id="l1",
        status="needsAction",
        due="2024-01-15",
        modified_at="2024-01-15T10:00:00.000Z",
        extra={"position": "0001"},
    )
    snapshot = MAPPERS[ItemKind.GOOGLE_TASK].to_snapshot(item, "t1", ["a", "b"], parent_native_id="g0")

    assert snapshot.kind == "google_task"
    assert snapshot.mirrored_id == "t1"
    assert snapshot.parent_native_id == "g0"
    assert snapshot.status == "needsAction"
    assert snapshot.remote_modified_at == "2024-01-15T10:00:00.000Z"
    assert snapshot.applied_tags == '["a", "b"]'
    assert snapshot.extra == {"position": "0001"}


def test_alexa_reminder_keeps_time_and_device():
    item = RemoteItem(
        native_id="r1",
        title="Take out the bins",
        due="2024-01-15T19:30:00+00:00",
        extra={"device_name": "Kitchen Echo"},
    )
    params = MAPPERS[ItemKind.ALEXA_REMINDER].to_create(item, "p1", [])

    assert params.due_string == "2024-01-15 19:30"
    assert params.due_date is None
    assert params.description == "From Alexa device: Kitchen Echo"


def test_alexa_reminder_update_sends_due_string():
    snapshot = Snapshot(kind="alexa_reminder", native_id="r1", title="Bins", due_date="2024-01-15T19:30:00+00:00")
    moved = RemoteItem(native_id="r1", title="Bins", due="2024-01-16T19:30:00+00:00")
    cleared = RemoteItem(native_id="r1", title="Bins", due=None)

    mapper = MAPPERS[ItemKind.ALEXA_REMINDER]
    assert mapper.to_update(moved, snapshot).to_payload() == {"due_string": "2024-01-16 19:30"}
    assert mapper.to_update(cleared, snapshot).to_payload() == {"due_string": "no date"}


def test_alexa_reminder_update_follows_device_change():
    snapshot = Snapshot(
        kind="alexa_reminder",
        native_id="r1",
        title="Bins",
        due_date="2024-01-15T19:30:00+00:00",
        extra={"device_name": "Kitchen Echo"},
    )
    moved = RemoteItem(
        native_id="r1", title="Bins", due="2024-01-15T19:30:00+00:00", extra={"device_name": "Bedroom Echo"}
    )
    unassigned = RemoteItem(native_id="r1", title="Bins", due="2024-01-15T19:30:00+00:00")
    same = RemoteItem(
        native_id="r1", title="Bins", due="2024-01-15T19:30:00+00:00", extra={"device_name": "Kitchen Echo"}
    )

    mapper = MAPPERS[ItemKind.ALEXA_REMINDER]
    assert mapper.to_update(moved, snapshot).to_payload() == {"description": "From Alexa device: Bedroom Echo"}
    assert mapper.to_update(unassigned, snapshot).to_payload() == {"description": ""}
    assert mapper.to_update(same, snapshot).is_empty()


def test_alexa_shopping_defaults_title():
    item = RemoteItem(native_id="s1", title="")
    assert MAPPERS[ItemKind.ALEXA_SHOPPING].to_create(item, "p1", []).content == "Shopping Item"


def test_alexa_shopping_update_ignores_notes_and_due():
    snapshot = Snapshot(kind="alexa_shopping", native_id="s1", title="Eggs")
    item = RemoteItem(native_id="s1", title="Eggs", notes="free range", due="2024-01-15")
    assert MAPPERS[ItemKind.ALEXA_SHOPPING].to_update(item, snapshot).is_empty()


def test_remote_to_todoist_update_only_differences():
    item = RemoteItem(native_id="ms1", title="Report", notes=None, due="2024-02-01")
    task = MirroredTask(id="t1", content="Report", description="old notes", due_date="2024-01-01")

    assert remote_to_todoist_update(item, task).to_payload() == {"description": "", "due_date": "2024-02-01"}


def test_todoist_to_remote_fields_for_new_item():
    task = MirroredTask(id="t1", content="Call the bank", description="", due_date=None)
    fields = todoist_to_remote_fields(task)

    assert (fields.title, fields.notes, fields.due, fields.clear_due) == ("Call the bank", None, None, False)


def test_todoist_to_remote_fields_clears_due():
    item = RemoteItem(native_id="ms1", title="Report", due="2024-02-01")
    task = MirroredTask(id="t1", content="Report", due_date=None)
    fields = todoist_to_remote_fields(task, item)

    assert fields.title is None
    assert fields.notes is None
    assert fields.clear_due is True


def test_bidirectional_snapshots_hash_their_side():
    item = RemoteItem(native_id="ms1", title="Report", list_id="l1", completed=True, modified_at="2024-01-15T10:00:00Z")
    task = MirroredTask(id="t1", content="Report v2", description="notes")

    from_remote = bidirectional_snapshot_from_remote(item, "t1", ["work"], None)
    from_mirror = bidirectional_snapshot_from_mirror(task, item, ["work"], "2024-01-15T11:00:00Z")

    assert from_remote.status == "completed"
    assert from_remote.content_hash == content_hash("Report", None, "completed", None)
    assert from_mirror.title == "Report v2"
    assert from_mirror.status == "notStarted"
    assert from_mirror.content_hash == content_hash("Report v2", "notes", "notStarted", None)
    assert from_mirror.remote_modified_at == "2024-01-15T10:00:00Z"
    assert from_mirror.mirrored_modified_at == "2024-01-15T11:00:00Z"
