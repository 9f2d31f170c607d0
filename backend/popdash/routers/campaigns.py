"""
Campaigns Router — the stored campaign snapshot, refresh and selection.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from popdash.auth import get_record_store
from popdash.models import CampaignSnapshot
from popdash.services.dashboard_service import (
    DashboardService, RefreshInProgress, is_refreshing, selection_stats,
)
from popdash.services.record_store import RecordStore, snapshot_to_record
from popdash.utils import safe_error_detail

logger = logging.getLogger(__name__)
router = APIRouter()


class SelectionUpdate(BaseModel):
    campaign_ids: list[str]


# ── Helpers ───────────────────────────────────────────────────────────

def _campaign_to_response(row: CampaignSnapshot) -> dict:
    record = snapshot_to_record(row)
    return {
        **record.model_dump(mode="json"),
        "ctr": record.ctr_display,
        "is_selected": row.is_selected,
    }


async def _campaign_listing(store: RecordStore) -> dict:
    rows = await store.list_campaigns()
    return {
        "campaigns": [_campaign_to_response(r) for r in rows],
        "selected_ids": [r.campaign_id for r in rows if r.is_selected],
        "loading": is_refreshing(store.owner_id),
    }


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("")
async def list_campaigns(store: RecordStore = Depends(get_record_store)):
    """Stored snapshot, highest CPM first."""
    return await _campaign_listing(store)


@router.post("/refresh")
async def refresh_campaigns(store: RecordStore = Depends(get_record_store)):
    creds = await store.load_credentials()
    if not creds:
        raise HTTPException(
            status_code=404,
            detail="No API credentials found. Add your ad network API key first.",
        )
    try:
        campaigns, persisted = await DashboardService(store).refresh_campaigns(creds)
    except RefreshInProgress:
        raise HTTPException(status_code=409, detail="A campaign refresh is already in progress.")
    except Exception as e:
        raise HTTPException(status_code=502, detail=safe_error_detail(e, "Failed to refresh campaigns from the ad network."))
    if not persisted:
        raise HTTPException(status_code=500, detail="Fetched campaigns could not be saved. Please try again.")
    return await _campaign_listing(store)


@router.put("/selection")
async def update_selection(payload: SelectionUpdate, store: RecordStore = Depends(get_record_store)):
    if not await store.set_selection(payload.campaign_ids):
        raise HTTPException(status_code=500, detail="Failed to update selection. Please try again.")
    return await _campaign_listing(store)


@router.post("/{campaign_id}/toggle")
async def toggle_campaign(campaign_id: str, store: RecordStore = Depends(get_record_store)):
    rows = await store.list_campaigns()
    selected = {r.campaign_id for r in rows if r.is_selected}
    if campaign_id not in {r.campaign_id for r in rows}:
        raise HTTPException(status_code=404, detail=f"Campaign {campaign_id} not found")
    selected ^= {campaign_id}
    if not await store.set_selection(selected):
        raise HTTPException(status_code=500, detail="Failed to update selection. Please try again.")
    return await _campaign_listing(store)


@router.get("/stats")
async def campaign_stats(store: RecordStore = Depends(get_record_store)):
    """Aggregates over the selected campaigns."""
    rows = await store.list_campaigns()
    return selection_stats(snapshot_to_record(r) for r in rows if r.is_selected)
