"""Per-source sync engines.

An engine owns one source, one Todoist client and one snapshot partition.
A pass sweeps stale snapshot rows, then fetches and reconciles every
configured scope. A failing scope is recorded and the next one still runs.
"""

import logging
from typing import Any

from taskbridge.core.bidirectional import BidirectionalReconciler
from taskbridge.core.config import AppConfig, SyncMapping
from taskbridge.core.errors import ScopeResolutionError
from taskbridge.core.mappers import MAPPERS, OneWayMapper
from taskbridge.core.models import BidirectionalSyncResult, ItemKind, SyncResult
from taskbridge.core.one_way import OneWayReconciler
from taskbridge.core.sweeper import StaleCacheSweeper
from taskbridge.sources.alexa.client import AlexaRemindersSource, AlexaShoppingSource, load_cookie
from taskbridge.sources.base import ReadOnlySource
from taskbridge.sources.google.client import GoogleTasksSource
from taskbridge.sources.microsoft.client import MicrosoftTodoSource
from taskbridge.sources.todoist.client import TodoistClient
from taskbridge.utils.db import SnapshotStore, SyncStateDB

logger = logging.getLogger(__name__)


class SyncEngine:
    """Common plumbing shared by every engine."""

    service: str = ""
    kind: ItemKind

    def __init__(self, config: AppConfig, todoist: TodoistClient, source: ReadOnlySource):
        """
        Initialize the engine.

        Args:
            config: Application configuration
            todoist: Client for the Todoist mirror (owned by the engine)
            source: Source adapter (owned by the engine)
        """
        self.config = config
        self.todoist = todoist
        self.source = source
        self.store = SnapshotStore(config.db_path, self.kind)
        self.state = SyncStateDB(config.db_path)
        self.sweeper = StaleCacheSweeper(self.store, self.todoist)

    async def initialize(self) -> None:
        """Create database tables."""
        await self.store.initialize()
        await self.state.initialize()

    async def sync(self) -> SyncResult:
        """Run one full pass. Never raises; failures end up in the result."""
        result = self._new_result()
        logger.info(f"Starting {self.service} sync...")

        try:
            targets = []
            for scope, mapping in await self._scopes(result):
                try:
                    project_id = await self.todoist.resolve_project_id(mapping.todoist_project_id)
                except Exception as e:
                    msg = f"Failed to resolve Todoist project for {mapping.scope_label}: {e}"
                    logger.error(msg)
                    result.errors.append(msg)
                    continue
                targets.append((scope, mapping, project_id))

            await self.sweeper.sweep([project_id for _, _, project_id in targets])

            for scope, mapping, project_id in targets:
                try:
                    await self._sync_scope(scope, mapping, project_id, result)
                except Exception as e:
                    msg = f"Failed to sync {mapping.scope_label}: {e}"
                    logger.error(msg)
                    result.errors.append(msg)

            await self._after_pass(result)
            await self.state.set_last_sync_at(self.service)
        except Exception as e:
            msg = f"Sync failed: {e}"
            logger.error(msg)
            result.success = False
            result.errors.append(msg)

        self._log_result(result)
        return result

    async def reset(self) -> None:
        """Forget every snapshot and bookkeeping value of this source."""
        await self.store.clear()
        await self.state.clear(self.service)
        logger.info(f"Reset {self.service} sync state")

    async def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = await self.store.get_stats()
        stats["last_sync_at"] = await self.state.get_last_sync_at(self.service)
        return stats

    async def close(self) -> None:
        await self.source.close()
        await self.todoist.close()

    def _new_result(self) -> SyncResult:
        return SyncResult()

    async def _scopes(self, result: SyncResult) -> list[tuple[str, SyncMapping]]:
        """Pairs of (native scope ID, mapping) to reconcile this pass."""
        raise NotImplementedError

    async def _sync_scope(self, scope: str, mapping: SyncMapping, project_id: str, result: SyncResult) -> None:
        raise NotImplementedError

    async def _after_pass(self, result: SyncResult) -> None:
        """Hook run after every scope was processed."""

    def _log_result(self, result: SyncResult) -> None:
        counters = ", ".join(f"{key}={value}" for key, value in result.to_dict().items() if key not in ("success", "errors"))
        if result.errors:
            logger.warning(f"{self.service} sync finished with {len(result.errors)} error(s): {counters}")
        elif result.has_changes:
            logger.info(f"{self.service} sync complete: {counters}")
        else:
            logger.info(f"{self.service} sync complete: no changes")


class OneWaySyncEngine(SyncEngine):
    """Engine for sources mirrored one way into Todoist."""

    def __init__(self, config: AppConfig, todoist: TodoistClient, source: ReadOnlySource):
        super().__init__(config, todoist, source)
        self.mapper: OneWayMapper = MAPPERS[self.kind]
        self.reconciler = OneWayReconciler(self.store, self.todoist, self.source, self.mapper)

    async def _include_completed(self, mapping: SyncMapping) -> bool:
        return mapping.include_completed

    async def _sync_scope(self, scope: str, mapping: SyncMapping, project_id: str, result: SyncResult) -> None:
        include_completed = await self._include_completed(mapping)
        items = await self.source.list_items(scope, include_completed)
        logger.debug(f"Fetched {len(items)} item(s) from {mapping.scope_label}")
        await self.reconciler.reconcile(scope, mapping, project_id, items, result)


class GoogleSyncEngine(OneWaySyncEngine):
    """Google Tasks → Todoist."""

    service = "google"
    kind = ItemKind.GOOGLE_TASK

    def __init__(self, config: AppConfig, todoist: TodoistClient, source: GoogleTasksSource):
        super().__init__(config, todoist, source)

    async def _scopes(self, result: SyncResult) -> list[tuple[str, SyncMapping]]:
        scopes = []
        for mapping in self.config.google.lists:
            if not mapping.source_list_id:
                logger.warning(f"Google mapping for project {mapping.todoist_project_id} has no source_list_id, skipping")
                continue
            scopes.append((mapping.source_list_id, mapping))
        return scopes

    async def _include_completed(self, mapping: SyncMapping) -> bool:
        """Completed tasks are imported once when ``sync_completed_once`` is set."""
        if not mapping.include_completed:
            return False
        if not self.config.sync.sync_completed_once:
            return True
        return not await self.state.is_completed_imported(self.service)

    async def _after_pass(self, result: SyncResult) -> None:
        wants_completed = any(mapping.include_completed for mapping in self.config.google.lists)
        if wants_completed and not await self.state.is_completed_imported(self.service):
            await self.state.mark_completed_imported(self.service)
            logger.info("Marked completed tasks as imported (one-time retroactive import)")


class AlexaRemindersSyncEngine(OneWaySyncEngine):
    """Alexa reminders → Todoist. Only the first mapping is used."""

    service = "alexa_reminders"
    kind = ItemKind.ALEXA_REMINDER

    def __init__(self, config: AppConfig, todoist: TodoistClient, source: AlexaRemindersSource):
        super().__init__(config, todoist, source)

    async def initialize(self) -> None:
        """
        Create tables and check the Alexa cookie file.

        Raises:
            AuthenticationError: If the cookie file is unusable
        """
        await super().initialize()
        load_cookie(self.config.alexa.cookie_path)

    async def _scopes(self, result: SyncResult) -> list[tuple[str, SyncMapping]]:
        if not self.config.alexa.lists:
            logger.info("No Alexa reminder mapping configured, skipping")
            return []
        if len(self.config.alexa.lists) > 1:
            logger.warning("Only the first Alexa reminder mapping is used")
        return [("all", self.config.alexa.lists[0])]


class AlexaShoppingSyncEngine(OneWaySyncEngine):
    """Alexa shopping list → Todoist."""

    service = "alexa_shopping"
    kind = ItemKind.ALEXA_SHOPPING

    def __init__(self, config: AppConfig, todoist: TodoistClient, source: AlexaShoppingSource):
        super().__init__(config, todoist, source)

    async def initialize(self) -> None:
        await super().initialize()
        load_cookie(self.config.alexa.cookie_path)

    async def _scopes(self, result: SyncResult) -> list[tuple[str, SyncMapping]]:
        shopping = self.config.alexa.sync_shopping_list
        if not shopping.enabled:
            return []
        list_id = await self.source.resolve_list_id()
        if not list_id:
            logger.warning("Alexa shopping list not found, skipping shopping sync")
            return []
        return [(list_id, shopping.as_mapping())]


class MicrosoftSyncEngine(SyncEngine):
    """Microsoft To-Do ↔ Todoist."""

    service = "microsoft"
    kind = ItemKind.MICROSOFT_TASK

    def __init__(self, config: AppConfig, todoist: TodoistClient, source: MicrosoftTodoSource):
        super().__init__(config, todoist, source)
        self.reconciler = BidirectionalReconciler(
            self.store,
            self.todoist,
            source,
            conflict_policy=config.microsoft.conflict_policy,
            exclude_others_assignments=config.microsoft.exclude_others_assignments,
        )

    def _new_result(self) -> BidirectionalSyncResult:
        return BidirectionalSyncResult()

    async def _scopes(self, result: SyncResult) -> list[tuple[str, SyncMapping]]:
        scopes = []
        for mapping in self.config.microsoft.lists:
            try:
                list_id = await self.source.resolve_list_id(mapping.source_list_id, mapping.list_name)
            except ScopeResolutionError as e:
                msg = f"Failed to sync {mapping.scope_label}: {e}"
                logger.error(msg)
                result.errors.append(msg)
                continue
            scopes.append((list_id, mapping))
        return scopes

    async def _sync_scope(self, scope: str, mapping: SyncMapping, project_id: str, result: SyncResult) -> None:
        remote_items = await self.source.list_items(scope, mapping.include_completed)
        mirrored_tasks = await self.todoist.get_project_tasks(project_id)
        logger.debug(f"Fetched {len(remote_items)} Microsoft item(s) and {len(mirrored_tasks)} Todoist task(s)")
        await self.reconciler.reconcile(scope, mapping, project_id, remote_items, mirrored_tasks, result)


ENGINE_KINDS: dict[str, ItemKind] = {
    engine.service: engine.kind
    for engine in (GoogleSyncEngine, AlexaRemindersSyncEngine, AlexaShoppingSyncEngine, MicrosoftSyncEngine)
}
