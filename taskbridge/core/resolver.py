"""Conflict resolution for bi-directional sources.

Pure functions: no I/O, no clock, same inputs always give the same winner.
"""

from taskbridge.core.detector import has_mirrored_changed, has_remote_changed_since_sync, is_newer
from taskbridge.core.models import MirroredTask, RemoteItem, Snapshot, Winner
from taskbridge.utils.dates import parse_timestamp

PREFER_SOURCE = "prefer_source"
PREFER_MIRROR = "prefer_mirror"
LAST_WRITE_WINS = "last_write_wins"


def resolve_conflict(
    remote: RemoteItem,
    mirrored: MirroredTask,
    snapshot: Snapshot,
    policy: str = LAST_WRITE_WINS,
) -> Winner:
    """
    Decide which side's content should be propagated.

    Args:
        remote: Item from the native platform
        mirrored: Matching Todoist task
        snapshot: Stored state from the previous pass
        policy: Tie-break when both sides changed

    Returns:
        Winner.NONE if neither side changed, otherwise the side to copy from
    """
    remote_changed = has_remote_changed_since_sync(remote, snapshot)
    mirrored_changed = has_mirrored_changed(mirrored, snapshot)

    if not remote_changed and not mirrored_changed:
        return Winner.NONE
    if remote_changed and not mirrored_changed:
        return Winner.REMOTE
    if mirrored_changed and not remote_changed:
        return Winner.MIRRORED

    if policy == PREFER_SOURCE:
        return Winner.REMOTE
    if policy == PREFER_MIRROR:
        return Winner.MIRRORED

    newer = is_newer(remote.modified_at, snapshot.mirrored_modified_at)
    if newer is None:
        # No comparable timestamps; the mirror was fetched last in this pass
        return Winner.MIRRORED
    return Winner.REMOTE if newer else Winner.MIRRORED


def resolve_completion(remote: RemoteItem, snapshot: Snapshot) -> Winner:
    """
    Pick the side whose completion state wins when the two disagree.

    The remote side wins when its modification time is at least as new as the
    last write this system made to the mirror, or when no mirror write has
    been recorded. Without a remote timestamp the mirror wins.
    """
    remote_modified = parse_timestamp(remote.modified_at)
    mirrored_modified = parse_timestamp(snapshot.mirrored_modified_at)

    if remote_modified is None:
        return Winner.MIRRORED
    if mirrored_modified is None:
        return Winner.REMOTE
    return Winner.REMOTE if remote_modified >= mirrored_modified else Winner.MIRRORED
