"""
Tests for campaign refresh locking and selection aggregates.
"""

import anyio
import pytest

from popdash.schemas import ApiCredentials, CampaignRecord
from popdash.services import dashboard_service
from popdash.services.dashboard_service import (
    DashboardService,
    RefreshInProgress,
    is_refreshing,
    selection_stats,
)
from popdash.services.record_store import RecordStore

CREDS = ApiCredentials(api_key="k-123456", publisher_id="p", endpoint="https://network.example.com")


def _campaigns():
    return [
        CampaignRecord(id="a", name="A", url="https://ads.example.com/a", cpm=2.0, clicks=10, revenue=0.02),
        CampaignRecord(id="b", name="B", url="https://ads.example.com/b", cpm=1.0, status="paused"),
    ]


class StaticClient:
    def __init__(self, credentials, campaigns=None, gate=None):
        self.campaigns = campaigns if campaigns is not None else _campaigns()
        self.gate = gate

    async def fetch_campaigns(self):
        if self.gate is not None:
            await self.gate.wait()
        return self.campaigns


class FailingClient(StaticClient):
    async def fetch_campaigns(self):
        raise RuntimeError("network exploded")


@pytest.mark.anyio
async def test_refresh_selects_active_campaigns(db_session, user):
    store = RecordStore(db_session, user.id)
    campaigns, persisted = await DashboardService(store, StaticClient).refresh_campaigns(CREDS)
    assert persisted is True
    assert [c.id for c in campaigns] == ["a", "b"]
    assert {r.campaign_id for r in await store.list_campaigns() if r.is_selected} == {"a"}


@pytest.mark.anyio
async def test_lock_entry_dropped_after_refresh(db_session, user):
    store = RecordStore(db_session, user.id)
    await DashboardService(store, StaticClient).refresh_campaigns(CREDS)
    assert user.id not in dashboard_service._refresh_locks
    assert is_refreshing(user.id) is False


@pytest.mark.anyio
async def test_lock_entry_dropped_after_failed_refresh(db_session, user):
    store = RecordStore(db_session, user.id)
    with pytest.raises(RuntimeError):
        await DashboardService(store, FailingClient).refresh_campaigns(CREDS)
    assert store.owner_id not in dashboard_service._refresh_locks


@pytest.mark.anyio
async def test_concurrent_refresh_is_rejected(db_session, user):
    store = RecordStore(db_session, user.id)
    gate = anyio.Event()
    results = []

    async def first():
        service = DashboardService(store, lambda creds: StaticClient(creds, gate=gate))
        results.append(await service.refresh_campaigns(CREDS))

    async with anyio.create_task_group() as tg:
        tg.start_soon(first)
        await anyio.wait_all_tasks_blocked()
        assert is_refreshing(user.id) is True
        with pytest.raises(RefreshInProgress):
            await DashboardService(store, StaticClient).refresh_campaigns(CREDS)
        gate.set()

    assert results[0][1] is True
    assert user.id not in dashboard_service._refresh_locks


def test_selection_stats():
    assert selection_stats(_campaigns()[:1]) == {
        "total_campaigns": 1, "avg_cpm": 2.0, "total_revenue": 0.02, "total_clicks": 10,
    }
    assert selection_stats([]) == {"total_campaigns": 0, "avg_cpm": 0.0, "total_revenue": 0, "total_clicks": 0}
