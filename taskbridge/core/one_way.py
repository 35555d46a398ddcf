"""One-way reconciliation: the source is authoritative, Todoist is a reflection.

Per scope the reconciler runs three phases:

1. Creation/update pass over the fetched items (parents before children)
2. Deletion pass over snapshots whose native item was not fetched
3. Tally of everything that happened, returned through ``SyncResult``

A failure on one item is recorded in ``result.errors`` and never stops the
rest of the batch.
"""

import logging

from taskbridge.core.config import SyncMapping
from taskbridge.core.detector import has_changed, serialize_tags, tags_changed
from taskbridge.core.mappers import OneWayMapper
from taskbridge.core.models import RemoteItem, Snapshot, SyncResult, TaskUpdate
from taskbridge.sources.base import ReadOnlySource
from taskbridge.sources.todoist.client import TodoistClient
from taskbridge.utils.db import SnapshotStore

logger = logging.getLogger(__name__)


def order_parents_first(items: list[RemoteItem]) -> list[RemoteItem]:
    """Top-level items first so a child's parent is mirrored before the child."""
    return sorted(items, key=lambda item: item.parent_id is not None)


class OneWayReconciler:
    """Mirror one scope of a read-only source into a Todoist project."""

    def __init__(
        self,
        store: SnapshotStore,
        todoist: TodoistClient,
        source: ReadOnlySource,
        mapper: OneWayMapper,
    ):
        self.store = store
        self.todoist = todoist
        self.source = source
        self.mapper = mapper

    async def reconcile(
        self,
        scope: str,
        mapping: SyncMapping,
        project_id: str,
        items: list[RemoteItem],
        result: SyncResult | None = None,
    ) -> SyncResult:
        """
        Reconcile one scope.

        Args:
            scope: Native list ID the items were fetched from
            mapping: Configured mapping (tags, delete_after_sync)
            project_id: Resolved Todoist project ID
            items: Items fetched from the source for this scope
            result: Tally to accumulate into (a new one is created if omitted)

        Returns:
            The accumulated tally
        """
        if result is None:
            result = SyncResult()

        seen: set[str] = set()
        for item in order_parents_first(items):
            seen.add(item.native_id)
            try:
                snapshot = await self.store.get_by_native_id(item.native_id)
                if snapshot is None:
                    await self._create(scope, item, mapping, project_id, result)
                else:
                    await self._update(scope, item, snapshot, mapping, result)
            except Exception as e:
                msg = f'Failed to sync "{item.title}": {e}'
                logger.error(msg)
                result.errors.append(msg)

        await self._delete_unseen(scope, seen, result)
        return result

    async def _create(
        self,
        scope: str,
        item: RemoteItem,
        mapping: SyncMapping,
        project_id: str,
        result: SyncResult,
    ) -> None:
        parent_mirrored_id = None
        if item.parent_id:
            parent = await self.store.get_by_native_id(item.parent_id)
            if parent and parent.mirrored_id:
                parent_mirrored_id = parent.mirrored_id
            else:
                logger.debug(f"Parent {item.parent_id} of '{item.title}' is not mirrored, creating at top level")

        params = self.mapper.to_create(item, project_id, mapping.tags, parent_mirrored_id)
        task = await self.todoist.create_task(params)
        await self.store.create(self.mapper.to_snapshot(item, task.id, mapping.tags, item.parent_id))
        result.created += 1
        logger.info(f"Created task: {item.title}")

        if item.completed:
            try:
                await self.todoist.complete_task(task.id)
            except Exception:
                # Forget the stored status so the next pass retries the completion
                await self.store.update(item.native_id, status="", remote_modified_at=None)
                raise
            result.completed += 1

        if mapping.delete_after_sync:
            await self._delete_from_source(scope, item, result)

    async def _update(
        self,
        scope: str,
        item: RemoteItem,
        snapshot: Snapshot,
        mapping: SyncMapping,
        result: SyncResult,
    ) -> None:
        content_changed = has_changed(item, snapshot)
        labels_changed = tags_changed(snapshot.applied_tags, mapping.tags)

        if (content_changed or labels_changed) and snapshot.mirrored_id:
            if labels_changed:
                await self.todoist.update_task(snapshot.mirrored_id, TaskUpdate(labels=list(mapping.tags)))
                result.tags_updated += 1
                logger.info(f"Updated tags for task: {item.title}")

            if content_changed:
                update = self.mapper.to_update(item, snapshot)
                if not update.is_empty():
                    await self.todoist.update_task(snapshot.mirrored_id, update)
                    result.updated += 1
                    logger.info(f"Updated task: {item.title}")

                if item.status != snapshot.status:
                    if item.completed:
                        await self.todoist.complete_task(snapshot.mirrored_id)
                        result.completed += 1
                        logger.info(f"Completed task: {item.title}")
                    else:
                        await self.todoist.reopen_task(snapshot.mirrored_id)
                        logger.info(f"Reopened task: {item.title}")

            await self.store.update(
                item.native_id,
                parent_native_id=item.parent_id,
                applied_tags=serialize_tags(mapping.tags),
                **self.mapper.stored_fields(item),
            )
        elif content_changed or labels_changed:
            logger.warning(f"Snapshot for '{item.title}' has no Todoist task, skipping update")

        if mapping.delete_after_sync and snapshot.mirrored_id:
            await self._delete_from_source(scope, item, result)

    async def _delete_from_source(self, scope: str, item: RemoteItem, result: SyncResult) -> None:
        try:
            await self.source.delete_item(scope, item)
        except Exception as e:
            msg = f'Failed to delete "{item.title}" from source: {e}'
            logger.error(msg)
            result.errors.append(msg)
            return
        await self.store.delete(item.native_id)
        result.deleted_from_source += 1
        logger.info(f"Deleted from source after sync: {item.title}")

    async def _delete_unseen(self, scope: str, seen: set[str], result: SyncResult) -> None:
        for snapshot in await self.store.get_all(list_id=scope):
            if snapshot.native_id in seen:
                continue
            try:
                if snapshot.mirrored_id:
                    try:
                        await self.todoist.delete_task(snapshot.mirrored_id)
                    except Exception as e:
                        logger.warning(f"Failed to delete Todoist task {snapshot.mirrored_id} (may already be gone): {e}")
                await self.store.delete(snapshot.native_id)
                result.deleted += 1
                logger.info(f"Deleted task: {snapshot.title}")
            except Exception as e:
                msg = f'Failed to delete "{snapshot.title}": {e}'
                logger.error(msg)
                result.errors.append(msg)
