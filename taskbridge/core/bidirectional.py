"""Bi-directional reconciliation between a writable source and Todoist.

Both sides are sources of truth. Per scope:

1. Assignment filter: items created by someone else are ignored
2. Remote-driven pass: create, recreate or hand matched pairs to step 3
3. Conflict resolution: completion first, then content
4. Mirror-driven pass: tasks the user created in Todoist are created natively
5. Orphan cleanup for rows whose native item disappeared
"""

import logging

from taskbridge.core.config import SyncMapping
from taskbridge.core.detector import serialize_tags, tags_changed, tags_equal
from taskbridge.core.mappers import (
    bidirectional_snapshot_from_mirror,
    bidirectional_snapshot_from_remote,
    remote_to_todoist_create,
    remote_to_todoist_update,
    todoist_to_remote_fields,
)
from taskbridge.core.models import (
    BidirectionalSyncResult,
    MirroredTask,
    RemoteFields,
    RemoteItem,
    Snapshot,
    TaskUpdate,
    Winner,
)
from taskbridge.core.resolver import LAST_WRITE_WINS, resolve_completion, resolve_conflict
from taskbridge.sources.base import WritableSource
from taskbridge.sources.todoist.client import TodoistClient
from taskbridge.utils.dates import utc_now_iso
from taskbridge.utils.db import SnapshotStore

logger = logging.getLogger(__name__)

_MISSING = object()


def has_fields(fields: RemoteFields) -> bool:
    return fields.title is not None or fields.notes is not None or bool(fields.due) or fields.clear_due


def filter_by_assignment(items: list[RemoteItem], user_id: str | None) -> tuple[list[RemoteItem], list[RemoteItem]]:
    """
    Split items into (kept, skipped).

    Items without attribution, or attributed to ``user_id``, are kept. With no
    known user every item is kept.
    """
    if not user_id:
        return list(items), []
    kept: list[RemoteItem] = []
    skipped: list[RemoteItem] = []
    for item in items:
        if item.owner_id and item.owner_id != user_id:
            skipped.append(item)
        else:
            kept.append(item)
    return kept, skipped


class BidirectionalReconciler:
    """Keep one native list and one Todoist project in step."""

    def __init__(
        self,
        store: SnapshotStore,
        todoist: TodoistClient,
        source: WritableSource,
        *,
        conflict_policy: str = LAST_WRITE_WINS,
        exclude_others_assignments: bool = True,
    ):
        self.store = store
        self.todoist = todoist
        self.source = source
        self.conflict_policy = conflict_policy
        self.exclude_others_assignments = exclude_others_assignments
        self._verified: dict[str, MirroredTask | None] = {}

    async def reconcile(
        self,
        scope: str,
        mapping: SyncMapping,
        project_id: str,
        remote_items: list[RemoteItem],
        mirrored_tasks: list[MirroredTask],
        result: BidirectionalSyncResult | None = None,
    ) -> BidirectionalSyncResult:
        """
        Reconcile one native list with its Todoist project.

        Args:
            scope: Native list ID
            mapping: Configured mapping (tags)
            project_id: Resolved Todoist project ID
            remote_items: Items fetched from the native list
            mirrored_tasks: Active tasks fetched from the Todoist project
            result: Tally to accumulate into (a new one is created if omitted)

        Returns:
            The accumulated tally
        """
        if result is None:
            result = BidirectionalSyncResult()
        self._verified = {}

        items, skipped = await self._apply_assignment_filter(remote_items)
        result.skipped += len(skipped)
        skipped_ids = {item.native_id for item in skipped}

        mirrored_by_id = {task.id: task for task in mirrored_tasks}
        remote_ids = {item.native_id for item in items}
        matched_mirrored_ids: set[str] = set()

        logger.debug(
            f"Reconciling list {scope}: {len(items)} native item(s) ({len(skipped)} skipped), "
            f"{len(mirrored_tasks)} Todoist task(s)"
        )

        # Remote-driven pass
        for item in items:
            try:
                snapshot = await self.store.get_by_native_id(item.native_id)
                if snapshot is None or not snapshot.mirrored_id:
                    task = await self._create_in_todoist(item, mapping, project_id, result)
                    matched_mirrored_ids.add(task.id)
                    continue

                matched_mirrored_ids.add(snapshot.mirrored_id)
                task = await self._find_mirrored(snapshot.mirrored_id, mirrored_by_id)
                if task is None:
                    logger.info(f"Todoist task for '{item.title}' was deleted, recreating from source")
                    task = await self._create_in_todoist(item, mapping, project_id, result)
                    matched_mirrored_ids.add(task.id)
                else:
                    await self._sync_pair(scope, item, task, snapshot, mapping, result)
            except Exception as e:
                msg = f'Failed to sync "{item.title}": {e}'
                logger.error(msg)
                result.errors.append(msg)

        # Mirror-driven pass
        for task in mirrored_tasks:
            if task.id in matched_mirrored_ids:
                continue
            try:
                if await self.store.get_by_mirrored_id(task.id) is not None:
                    continue
                await self._create_in_source(scope, task, mapping, result)
            except Exception as e:
                msg = f'Failed to create "{task.content}" in source: {e}'
                logger.error(msg)
                result.errors.append(msg)

        # Orphan cleanup
        for snapshot in await self.store.get_all(list_id=scope):
            if snapshot.native_id in remote_ids or snapshot.native_id in skipped_ids:
                continue
            try:
                await self._handle_orphan(scope, snapshot, mapping, mirrored_by_id, result)
            except Exception as e:
                msg = f'Failed to clean up "{snapshot.title}": {e}'
                logger.error(msg)
                result.errors.append(msg)

        return result

    async def _apply_assignment_filter(
        self, items: list[RemoteItem]
    ) -> tuple[list[RemoteItem], list[RemoteItem]]:
        if not self.exclude_others_assignments:
            return list(items), []
        try:
            user_id = await self.source.current_user_id()
        except Exception as e:
            logger.warning(f"Could not determine current user, assignment filter disabled: {e}")
            user_id = None
        kept, skipped = filter_by_assignment(items, user_id)
        if skipped:
            logger.debug(f"Skipped {len(skipped)} item(s) created by other users")
        return kept, skipped

    async def _find_mirrored(self, mirrored_id: str, fetched: dict[str, MirroredTask]) -> MirroredTask | None:
        """Look a task up in the active fetch, then individually (completed tasks are not listed)."""
        task = fetched.get(mirrored_id)
        if task is not None:
            return task
        cached = self._verified.get(mirrored_id, _MISSING)
        if cached is not _MISSING:
            return cached
        task = await self.todoist.get_task(mirrored_id)
        self._verified[mirrored_id] = task
        return task

    async def _create_in_todoist(
        self,
        item: RemoteItem,
        mapping: SyncMapping,
        project_id: str,
        result: BidirectionalSyncResult,
    ) -> MirroredTask:
        task = await self.todoist.create_task(remote_to_todoist_create(item, project_id, mapping.tags))
        if item.completed:
            await self.todoist.complete_task(task.id)
            task.is_completed = True
            result.completed += 1

        await self.store.create(bidirectional_snapshot_from_remote(item, task.id, mapping.tags, utc_now_iso()))
        result.created += 1
        logger.info(f"Created Todoist task from source: {item.title}")
        return task

    async def _create_in_source(
        self,
        scope: str,
        task: MirroredTask,
        mapping: SyncMapping,
        result: BidirectionalSyncResult,
    ) -> None:
        item = await self.source.create_item(scope, todoist_to_remote_fields(task))
        if task.is_completed:
            item = await self.source.set_completion(scope, item.native_id, True)
            result.completed_in_source += 1

        if mapping.tags and not tags_equal(task.labels, mapping.tags):
            await self.todoist.update_task(task.id, TaskUpdate(labels=list(mapping.tags)))
            result.tags_updated += 1

        await self.store.create(bidirectional_snapshot_from_mirror(task, item, mapping.tags, utc_now_iso()))
        result.created_in_source += 1
        logger.info(f"Created source task from Todoist: {task.content}")

    async def _sync_pair(
        self,
        scope: str,
        item: RemoteItem,
        task: MirroredTask,
        snapshot: Snapshot,
        mapping: SyncMapping,
        result: BidirectionalSyncResult,
    ) -> None:
        if tags_changed(snapshot.applied_tags, mapping.tags):
            await self.todoist.update_task(task.id, TaskUpdate(labels=list(mapping.tags)))
            await self.store.update(item.native_id, applied_tags=serialize_tags(mapping.tags))
            result.tags_updated += 1
            logger.info(f"Updated tags for task: {item.title}")

        if item.completed != task.is_completed:
            await self._sync_completion(scope, item, task, snapshot, mapping, result)
            return

        winner = resolve_conflict(item, task, snapshot, self.conflict_policy)
        if winner == Winner.REMOTE:
            update = remote_to_todoist_update(item, task)
            mirrored_modified_at = snapshot.mirrored_modified_at
            if not update.is_empty():
                await self.todoist.update_task(task.id, update)
                mirrored_modified_at = utc_now_iso()
                result.updated += 1
                logger.info(f"Updated Todoist task from source: {item.title}")
            await self.store.create(
                bidirectional_snapshot_from_remote(item, task.id, mapping.tags, mirrored_modified_at)
            )
        elif winner == Winner.MIRRORED:
            fields = todoist_to_remote_fields(task, item)
            mirrored_modified_at = snapshot.mirrored_modified_at
            if has_fields(fields):
                item = await self.source.update_item(scope, item.native_id, fields)
                mirrored_modified_at = utc_now_iso()
                result.updated_in_source += 1
                logger.info(f"Updated source task from Todoist: {task.content}")
            await self.store.create(bidirectional_snapshot_from_mirror(task, item, mapping.tags, mirrored_modified_at))

    async def _sync_completion(
        self,
        scope: str,
        item: RemoteItem,
        task: MirroredTask,
        snapshot: Snapshot,
        mapping: SyncMapping,
        result: BidirectionalSyncResult,
    ) -> None:
        """Propagate the winning completion state. Content waits for the next pass."""
        mirrored_modified_at = snapshot.mirrored_modified_at
        if resolve_completion(item, snapshot) == Winner.REMOTE:
            if item.completed:
                await self.todoist.complete_task(task.id)
                result.completed += 1
                logger.info(f"Completed Todoist task (from source): {item.title}")
            else:
                await self.todoist.reopen_task(task.id)
                result.updated += 1
                logger.info(f"Reopened Todoist task (from source): {item.title}")
            mirrored_modified_at = utc_now_iso()
        else:
            item = await self.source.set_completion(scope, item.native_id, task.is_completed)
            mirrored_modified_at = utc_now_iso()
            if task.is_completed:
                result.completed_in_source += 1
                logger.info(f"Completed source task (from Todoist): {item.title}")
            else:
                result.updated_in_source += 1
                logger.info(f"Reopened source task (from Todoist): {item.title}")

        await self.store.create(bidirectional_snapshot_from_remote(item, task.id, mapping.tags, mirrored_modified_at))

    async def _handle_orphan(
        self,
        scope: str,
        snapshot: Snapshot,
        mapping: SyncMapping,
        mirrored_by_id: dict[str, MirroredTask],
        result: BidirectionalSyncResult,
    ) -> None:
        task = await self._find_mirrored(snapshot.mirrored_id, mirrored_by_id) if snapshot.mirrored_id else None
        if task is None:
            await self.store.delete(snapshot.native_id)
            logger.debug(f"Cleaned up orphaned snapshot {snapshot.native_id}")
            return

        # The native listing may hide completed items; only a missing item is a deletion
        native = await self.source.get_item(scope, snapshot.native_id)
        if native is not None:
            if native.completed and not task.is_completed:
                await self.todoist.complete_task(task.id)
                result.completed += 1
                logger.info(f"Completed Todoist task (from source): {native.title}")
                await self.store.create(
                    bidirectional_snapshot_from_remote(native, task.id, mapping.tags, utc_now_iso())
                )
            return

        try:
            await self.todoist.delete_task(task.id)
        except Exception as e:
            logger.warning(f"Failed to delete Todoist task {task.id}: {e}")
            return
        await self.store.delete(snapshot.native_id)
        result.deleted += 1
        logger.info(f"Deleted Todoist task (source item was deleted): {snapshot.title}")
