"""
Dashboard Service — campaign refresh and selection aggregates.

A refresh fetches the publisher's campaigns, replaces the stored snapshot and
auto-selects every active campaign. One refresh per user at a time: a second
request while one is running is rejected rather than raced.
"""

import asyncio
import logging
import uuid
from typing import Callable, Iterable

from popdash.ad_network_client import AdNetworkClient
from popdash.schemas import ApiCredentials, CampaignRecord
from popdash.services.record_store import RecordStore

logger = logging.getLogger(__name__)

_refresh_locks: dict[uuid.UUID, asyncio.Lock] = {}


class RefreshInProgress(Exception):
    """A campaign refresh for this user is already running."""
    pass


def _lock_for(owner_id: uuid.UUID) -> asyncio.Lock:
    lock = _refresh_locks.get(owner_id)
    if lock is None:
        lock = _refresh_locks[owner_id] = asyncio.Lock()
    return lock


def is_refreshing(owner_id: uuid.UUID) -> bool:
    lock = _refresh_locks.get(owner_id)
    return bool(lock and lock.locked())


class DashboardService:
    def __init__(
        self,
        store: RecordStore,
        client_factory: Callable[[ApiCredentials], AdNetworkClient] = AdNetworkClient,
    ):
        self.store = store
        self.client_factory = client_factory

    async def refresh_campaigns(self, credentials: ApiCredentials) -> tuple[list[CampaignRecord], bool]:
        """
        Fetch campaigns and replace the stored snapshot.

        Returns (campaigns, persisted). The listing itself never fails (the
        client falls back to synthetic data); `persisted` is False when the
        store rejected the new snapshot, in which case the old one is kept.
        """
        lock = _lock_for(self.store.owner_id)
        if lock.locked():
            raise RefreshInProgress(f"Campaign refresh already running for user {self.store.owner_id}")

        try:
            async with lock:
                client = self.client_factory(credentials)
                campaigns = await client.fetch_campaigns()
                active_ids = [c.id for c in campaigns if c.is_active]
                persisted = await self.store.replace_campaigns(campaigns, selected_ids=active_ids)
                logger.info(
                    f"Refreshed {len(campaigns)} campaigns for user {self.store.owner_id} "
                    f"({len(active_ids)} active, persisted={persisted})"
                )
                return campaigns, persisted
        finally:
            # Drop the entry once released
            if not lock.locked():
                _refresh_locks.pop(self.store.owner_id, None)


def selection_stats(campaigns: Iterable[CampaignRecord]) -> dict:
    """Count, average CPM, total revenue and total clicks of the selected campaigns."""
    selected = list(campaigns)
    count = len(selected)
    return {
        "total_campaigns": count,
        "avg_cpm": round(sum(c.cpm for c in selected) / count, 2) if count else 0.0,
        "total_revenue": round(sum(c.revenue for c in selected), 2),
        "total_clicks": sum(c.clicks for c in selected),
    }
