"""Change detection between fetched items and their stored snapshots.

Timestamps are preferred when both sides have one. Otherwise fields (or a
content hash, for the Todoist side which exposes no modification time) are
compared. Tags are compared independently of content: configuration, not
remote state, is authoritative for them.
"""

import hashlib
import json
import logging
from typing import Iterable

from taskbridge.core.models import MirroredTask, RemoteItem, Snapshot
from taskbridge.utils.dates import extract_date_only, parse_timestamp

logger = logging.getLogger(__name__)

COMPLETED = "completed"
NOT_STARTED = "notStarted"


def canonical_status(completed: bool) -> str:
    return COMPLETED if completed else NOT_STARTED


def content_hash(title: str | None, body: str | None, status: str | None, due_date: str | None) -> str:
    """md5 of the JSON ``{title, body, status, dueDate}`` with empty defaults."""
    content = json.dumps(
        {
            "title": title or "",
            "body": body or "",
            "status": status or "",
            "dueDate": due_date or "",
        },
        separators=(",", ":"),
    )
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def remote_hash(item: RemoteItem) -> str:
    return content_hash(item.title, item.notes, canonical_status(item.completed), extract_date_only(item.due))


def mirrored_hash(task: MirroredTask) -> str:
    return content_hash(task.content, task.description, canonical_status(task.is_completed), task.due_date)


def is_newer(candidate: str | None, reference: str | None) -> bool | None:
    """
    Compare two timestamps.

    Returns:
        True/False when both parse, None when either side is unusable
    """
    candidate_dt = parse_timestamp(candidate)
    reference_dt = parse_timestamp(reference)
    if candidate_dt is None or reference_dt is None:
        return None
    return candidate_dt > reference_dt


def has_changed(item: RemoteItem, snapshot: Snapshot) -> bool:
    """Decide whether a remote item differs from its snapshot.

    Uses the modification markers when both are parseable (changed iff the
    remote one is strictly later), otherwise compares title, notes, status
    and due date.
    """
    newer = is_newer(item.modified_at, snapshot.remote_modified_at)
    if newer is not None:
        return newer

    if (item.title or "") != (snapshot.title or ""):
        return True
    if (item.notes or "") != (snapshot.notes or ""):
        return True
    if (item.status or "") != (snapshot.status or ""):
        return True
    return _due_key(item.due) != _due_key(snapshot.due_date)


def has_remote_changed_since_sync(item: RemoteItem, snapshot: Snapshot) -> bool:
    """Bi-directional variant: timestamp first, stored content hash second."""
    newer = is_newer(item.modified_at, snapshot.remote_modified_at)
    if newer is not None:
        return newer
    return remote_hash(item) != snapshot.content_hash


def has_mirrored_changed(task: MirroredTask, snapshot: Snapshot) -> bool:
    """The mirror exposes no modification time, so only the hash is usable."""
    return mirrored_hash(task) != snapshot.content_hash


def _due_key(value: str | None) -> str:
    if not value:
        return ""
    # Alexa reminders keep a full datetime, compare at minute precision
    if "T" in value:
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed.strftime("%Y-%m-%dT%H:%M")
    return extract_date_only(value) or value


def parse_stored_tags(value: str | None) -> list[str]:
    """Decode the JSON tag list kept in a snapshot. Corrupt data reads as no tags."""
    if not value:
        return []
    try:
        tags = json.loads(value)
    except (TypeError, json.JSONDecodeError):
        logger.debug(f"Ignoring unparseable stored tags: {value!r}")
        return []
    if not isinstance(tags, list):
        return []
    return [str(tag) for tag in tags]


def serialize_tags(tags: Iterable[str]) -> str | None:
    tags = list(tags)
    return json.dumps(tags) if tags else None


def tags_equal(left: Iterable[str], right: Iterable[str]) -> bool:
    return sorted(set(left)) == sorted(set(right))


def tags_changed(applied_tags: str | None, configured_tags: Iterable[str]) -> bool:
    """True when the stored tag set differs from the configured one (order-independent)."""
    return not tags_equal(parse_stored_tags(applied_tags), configured_tags)
