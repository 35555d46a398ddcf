"""Tests for the per-source engines."""

import pytest

from taskbridge.core.config import ShoppingListConfig, SyncMapping
from taskbridge.core.engine import (
    AlexaRemindersSyncEngine,
    AlexaShoppingSyncEngine,
    GoogleSyncEngine,
    MicrosoftSyncEngine,
)
from taskbridge.core.errors import AuthenticationError, ScopeResolutionError
from taskbridge.core.models import BidirectionalSyncResult, ItemKind, RemoteItem
from tests.conftest import INBOX_ID, FakeSource, FakeTodoist, FakeWritableSource


class BrokenScopeSource(FakeSource):
    def __init__(self, items, broken_scope):
        super().__init__(items)
        self.broken_scope = broken_scope

    async def list_items(self, scope, include_completed=False):
        if scope == self.broken_scope:
            raise RuntimeError("HTTP 500")
        return await super().list_items(scope, include_completed)


class FakeMicrosoftSource(FakeWritableSource):
    lists = {"Work": "list-1", "Home": "list-2"}

    async def resolve_list_id(self, source_list_id, list_name):
        if source_list_id:
            return source_list_id
        if list_name in self.lists:
            return self.lists[list_name]
        raise ScopeResolutionError(f"Microsoft To-Do list not found: {list_name}")


class FakeShoppingSource(FakeSource):
    kind = ItemKind.ALEXA_SHOPPING

    def __init__(self, items=None, list_id="shop-1"):
        super().__init__(items)
        self.list_id = list_id

    async def resolve_list_id(self):
        return self.list_id


def google_item(native_id, title, scope="list-1", **kwargs):
    kwargs.setdefault("status", "completed" if kwargs.get("completed") else "needsAction")
    return RemoteItem(native_id=native_id, title=title, list_id=scope, **kwargs)


async def google_engine(app_config, todoist, source, *mappings):
    app_config.google.enabled = True
    app_config.google.lists = list(mappings)
    engine = GoogleSyncEngine(app_config, todoist, source)
    await engine.initialize()
    return engine


class TestGoogleEngine:
    @pytest.mark.asyncio
    async def test_full_pass(self, app_config):
        todoist = FakeTodoist()
        source = FakeSource([google_item("g1", "Buy milk"), google_item("g2", "Pay rent")])
        engine = await google_engine(app_config, todoist, source, SyncMapping(source_list_id="list-1"))

        result = await engine.sync()

        assert result.success
        assert result.created == 2
        assert result.errors == []
        assert sorted(task.content for task in todoist.tasks.values()) == ["Buy milk", "Pay rent"]
        assert all(task.project_id == INBOX_ID for task in todoist.tasks.values())

        stats = await engine.get_stats()
        assert stats["total"] == 2
        assert stats["last_sync_at"] is not None

    @pytest.mark.asyncio
    async def test_second_pass_is_quiet(self, app_config):
        todoist = FakeTodoist()
        source = FakeSource([google_item("g1", "Buy milk", modified_at="2024-01-15T10:00:00.000Z")])
        engine = await google_engine(app_config, todoist, source, SyncMapping(source_list_id="list-1"))

        await engine.sync()
        result = await engine.sync()

        assert not result.has_changes
        assert len(todoist.calls_to("create_task")) == 1

    @pytest.mark.asyncio
    async def test_mapping_without_list_is_skipped(self, app_config):
        engine = await google_engine(app_config, FakeTodoist(), FakeSource(), SyncMapping())

        result = await engine.sync()

        assert result.success
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_project_resolution_failure_is_recorded(self, app_config):
        todoist = FakeTodoist()
        todoist.fail["resolve_project_id"] = RuntimeError("HTTP 403")
        engine = await google_engine(
            app_config, todoist, FakeSource([google_item("g1", "Buy milk")]), SyncMapping(source_list_id="list-1")
        )

        result = await engine.sync()

        assert result.success
        assert result.errors == ["Failed to resolve Todoist project for list-1: HTTP 403"]
        assert todoist.tasks == {}

    @pytest.mark.asyncio
    async def test_failing_scope_does_not_stop_others(self, app_config):
        todoist = FakeTodoist()
        source = BrokenScopeSource(
            [google_item("g1", "Buy milk", scope="list-1"), google_item("g2", "Pay rent", scope="list-2")],
            broken_scope="list-1",
        )
        engine = await google_engine(
            app_config,
            todoist,
            source,
            SyncMapping(source_list_id="list-1", list_name="Groceries"),
            SyncMapping(source_list_id="list-2"),
        )

        result = await engine.sync()

        assert result.created == 1
        assert result.errors == ["Failed to sync Groceries: HTTP 500"]
        assert [task.content for task in todoist.tasks.values()] == ["Pay rent"]

    @pytest.mark.asyncio
    async def test_completed_items_imported_once(self, app_config):
        todoist = FakeTodoist()
        source = FakeSource([google_item("g1", "Old chore", completed=True)])
        engine = await google_engine(
            app_config, todoist, source, SyncMapping(source_list_id="list-1", include_completed=True)
        )

        await engine.sync()
        assert await engine.state.is_completed_imported("google")
        assert [task.content for task in todoist.tasks.values()] == ["Old chore"]

        source.items.append(google_item("g2", "Later chore", completed=True))
        await engine.sync()

        assert "Later chore" not in [task.content for task in todoist.tasks.values()]

    @pytest.mark.asyncio
    async def test_completed_items_every_pass_when_not_once(self, app_config):
        app_config.sync.sync_completed_once = False
        todoist = FakeTodoist()
        source = FakeSource([google_item("g1", "Old chore", completed=True)])
        engine = await google_engine(
            app_config, todoist, source, SyncMapping(source_list_id="list-1", include_completed=True)
        )

        await engine.sync()
        source.items.append(google_item("g2", "Later chore", completed=True))
        result = await engine.sync()

        assert result.created == 1
        assert await engine.state.is_completed_imported("google")

    @pytest.mark.asyncio
    async def test_reset_and_close(self, app_config):
        todoist = FakeTodoist()
        source = FakeSource([google_item("g1", "Buy milk")])
        engine = await google_engine(app_config, todoist, source, SyncMapping(source_list_id="list-1"))
        await engine.sync()

        await engine.reset()
        stats = await engine.get_stats()
        await engine.close()

        assert stats["total"] == 0
        assert stats["last_sync_at"] is None
        assert source.closed
        assert todoist.calls_to("close")


class TestAlexaEngines:
    @pytest.mark.asyncio
    async def test_reminders_need_cookie(self, app_config):
        app_config.alexa.enabled = True
        app_config.alexa.cookie_path = app_config.general.data_dir / "missing.json"
        engine = AlexaRemindersSyncEngine(app_config, FakeTodoist(), FakeSource())

        with pytest.raises(AuthenticationError):
            await engine.initialize()

    @pytest.mark.asyncio
    async def test_reminders_use_first_mapping_only(self, app_config):
        app_config.alexa.lists = [SyncMapping(todoist_project_id="p1"), SyncMapping(todoist_project_id="p2")]
        engine = AlexaRemindersSyncEngine(app_config, FakeTodoist(), FakeSource())

        scopes = await engine._scopes(engine._new_result())

        assert [(scope, mapping.todoist_project_id) for scope, mapping in scopes] == [("all", "p1")]

    @pytest.mark.asyncio
    async def test_shopping_scope(self, app_config):
        app_config.alexa.sync_shopping_list = ShoppingListConfig(enabled=True, todoist_project_id="groceries")
        engine = AlexaShoppingSyncEngine(app_config, FakeTodoist(), FakeShoppingSource())

        scopes = await engine._scopes(engine._new_result())

        assert [(scope, mapping.todoist_project_id) for scope, mapping in scopes] == [("shop-1", "groceries")]

    @pytest.mark.asyncio
    async def test_shopping_list_missing(self, app_config):
        app_config.alexa.sync_shopping_list = ShoppingListConfig(enabled=True)
        engine = AlexaShoppingSyncEngine(app_config, FakeTodoist(), FakeShoppingSource(list_id=None))

        assert await engine._scopes(engine._new_result()) == []


class TestMicrosoftEngine:
    @pytest.mark.asyncio
    async def test_full_pass_both_directions(self, app_config):
        app_config.microsoft.enabled = True
        app_config.microsoft.lists = [SyncMapping(list_name="Work", todoist_project_id="p1")]
        todoist = FakeTodoist()
        todoist.add("Call the bank", project_id="p1")
        source = FakeMicrosoftSource()
        source.add("Write report", modified_at="2024-01-15T10:00:00Z")
        engine = MicrosoftSyncEngine(app_config, todoist, source)
        await engine.initialize()

        result = await engine.sync()

        assert isinstance(result, BidirectionalSyncResult)
        assert result.success
        assert result.created == 1
        assert result.created_in_source == 1
        assert "Call the bank" in [item.title for item in source.items.values()]

    @pytest.mark.asyncio
    async def test_unknown_list_is_recorded(self, app_config):
        app_config.microsoft.lists = [
            SyncMapping(list_name="Errands", todoist_project_id="p1"),
            SyncMapping(list_name="Home", todoist_project_id="p2"),
        ]
        source = FakeMicrosoftSource()
        source.add("Fix the shelf", scope="list-2")
        engine = MicrosoftSyncEngine(app_config, FakeTodoist(), source)
        await engine.initialize()

        result = await engine.sync()

        assert result.errors == ["Failed to sync Errands: Microsoft To-Do list not found: Errands"]
        assert result.created == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_the_pass(self, app_config):
        app_config.microsoft.lists = [SyncMapping(list_name="Work", todoist_project_id="p1")]
        source = FakeMicrosoftSource()

        async def explode(source_list_id, list_name):
            raise RuntimeError("token revoked")

        source.resolve_list_id = explode
        engine = MicrosoftSyncEngine(app_config, FakeTodoist(), source)
        await engine.initialize()

        result = await engine.sync()

        assert result.success is False
        assert result.errors == ["Sync failed: token revoked"]
        assert await engine.state.get_last_sync_at("microsoft") is None
