"""
Profile Router — the calling user's profile record.
"""

from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from popdash.auth import get_record_store
from popdash.services.record_store import RecordStore

router = APIRouter()


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str]
    avatar_url: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


def _profile_to_response(user) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "full_name": user.full_name,
        "avatar_url": user.avatar_url,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


@router.get("", response_model=ProfileResponse)
async def get_profile(store: RecordStore = Depends(get_record_store)):
    user = await store.get_profile()
    if not user:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_to_response(user)


@router.put("", response_model=ProfileResponse)
async def update_profile(payload: ProfileUpdate, store: RecordStore = Depends(get_record_store)):
    if not await store.update_profile(full_name=payload.full_name, avatar_url=payload.avatar_url):
        raise HTTPException(status_code=500, detail="Failed to update profile. Please try again.")
    user = await store.get_profile()
    await store.db.refresh(user)
    return _profile_to_response(user)
