"""
Credentials Router — Ad network API credentials.
One active set per user; saving a new set retires the previous ones and
immediately refreshes the campaign list with the new key.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from popdash.ad_network_client import AdNetworkClient
from popdash.auth import get_record_store
from popdash.config import get_settings
from popdash.crypto import mask_key
from popdash.schemas import ApiCredentials
from popdash.services.dashboard_service import DashboardService, RefreshInProgress
from popdash.services.record_store import RecordStore
from popdash.utils import safe_error_detail

logger = logging.getLogger(__name__)
router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class CredentialCreate(BaseModel):
    api_key: str
    publisher_id: str
    endpoint: Optional[str] = None

    def to_credentials(self) -> ApiCredentials:
        return ApiCredentials(
            api_key=self.api_key,
            publisher_id=self.publisher_id,
            endpoint=self.endpoint or get_settings().default_campaign_endpoint,
        )


class CredentialResponse(BaseModel):
    configured: bool
    api_key_masked: str = ""
    publisher_id: Optional[str] = None
    endpoint: Optional[str] = None


# ── Endpoints ────────────────────────────────────────────────────────
@router.get("", response_model=CredentialResponse)
async def get_active_credentials(store: RecordStore = Depends(get_record_store)):
    creds = await store.load_credentials()
    if not creds:
        return CredentialResponse(configured=False)
    return CredentialResponse(
        configured=True,
        api_key_masked=mask_key(creds.api_key),
        publisher_id=creds.publisher_id,
        endpoint=creds.endpoint,
    )


async def _validate(creds: ApiCredentials) -> bool:
    try:
        return await AdNetworkClient(creds).validate_api_key()
    except Exception as e:
        raise HTTPException(status_code=502, detail=safe_error_detail(e, "Failed to communicate with the ad network."))


@router.post("/validate")
async def validate_credentials(payload: CredentialCreate):
    """Check an API key against the network without saving it."""
    return {"valid": await _validate(payload.to_credentials())}


@router.post("")
async def save_credentials(payload: CredentialCreate, store: RecordStore = Depends(get_record_store)):
    """Validate, store (retiring older sets), then refresh campaigns with the new key."""
    creds = payload.to_credentials()
    if not await _validate(creds):
        raise HTTPException(status_code=400, detail="API key was rejected by the ad network.")

    # The refresh below must read the new credentials, so the save completes first
    if not await store.save_credentials(creds):
        raise HTTPException(status_code=500, detail="Failed to save credentials. Please try again.")

    try:
        campaigns, persisted = await DashboardService(store).refresh_campaigns(creds)
    except RefreshInProgress:
        logger.info(f"Credentials saved for user {store.owner_id}; refresh already running")
        return {"saved": True, "campaigns_refreshed": False, "campaign_count": None}
    except Exception as e:
        raise HTTPException(
            status_code=502,
            detail=safe_error_detail(e, "Credentials saved, but campaigns could not be refreshed."),
        )

    return {
        "saved": True,
        "campaigns_refreshed": persisted,
        "campaign_count": len(campaigns),
    }
