"""Stale-cache sweep: drop snapshot rows whose Todoist task no longer exists."""

import logging

from taskbridge.sources.todoist.client import TodoistClient
from taskbridge.utils.db import SnapshotStore

logger = logging.getLogger(__name__)


class StaleCacheSweeper:
    """
    Removes snapshot rows pointing at Todoist tasks that were deleted.

    A row whose task is absent from the active listing is only a candidate:
    completed tasks are not listed, so each candidate is looked up on its own
    and only a confirmed miss is swept. Removing the row lets the next
    reconcile pass recreate the task from the source.
    """

    def __init__(self, store: SnapshotStore, todoist: TodoistClient):
        self.store = store
        self.todoist = todoist

    async def sweep(self, project_ids: list[str]) -> int:
        """
        Sweep the store against the given Todoist projects.

        Never raises: any failure abandons the sweep with a warning, leaving
        the store untouched.

        Args:
            project_ids: Resolved IDs of every project this source mirrors into

        Returns:
            Number of rows removed
        """
        if not project_ids:
            return 0

        try:
            active_ids: set[str] = set()
            for project_id in dict.fromkeys(project_ids):
                active_ids |= await self.todoist.list_container_item_ids(project_id)

            valid_ids = set(active_ids)
            candidates = [row for row in await self.store.get_all_with_mirrored_id() if row.mirrored_id not in active_ids]
            for row in candidates:
                if await self.todoist.get_task(row.mirrored_id) is not None:
                    valid_ids.add(row.mirrored_id)

            removed = await self.store.cleanup_stale(valid_ids)
        except Exception as e:  # pylint: disable=broad-except
            logger.warning(f"Failed to clean up stale cache entries ({self.store.kind}): {e}")
            return 0

        if removed:
            logger.info(f"Cleaned up {removed} stale {self.store.kind} snapshot(s)")
        return removed
