"""
Record Store — owner-scoped persistence for credentials, campaign snapshots and scripts.

Every query, filter and mutation is parameterized by the owning user id; no
method can read or touch another user's rows. Mutations report success as a
bool: on failure the transaction is rolled back and stored state is left as
it was.
"""

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from popdash.crypto import decrypt_value, encrypt_value
from popdash.models import ApiCredential, CampaignSnapshot, GeneratedScript, User
from popdash.schemas import ApiCredentials, CampaignRecord, PopunderConfig
from popdash.utils import to_naive_utc

logger = logging.getLogger(__name__)


def snapshot_to_record(row: CampaignSnapshot) -> CampaignRecord:
    return CampaignRecord(
        id=row.campaign_id,
        name=row.name,
        url=row.url,
        cpm=row.cpm,
        country=row.country,
        device=row.device,
        category=row.category or "",
        status=row.status,
        impressions=row.impressions,
        clicks=row.clicks,
        revenue=row.revenue,
        created_at=row.created_at,
    )


class RecordStore:
    def __init__(self, db: AsyncSession, owner_id: uuid.UUID):
        self.db = db
        self.owner_id = owner_id

    async def _commit(self, action: str) -> bool:
        try:
            await self.db.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Record store: {action} failed for user {self.owner_id}: {e}", exc_info=True)
            await self.db.rollback()
            return False

    # ── Profile ───────────────────────────────────────────────────────

    async def get_profile(self) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == self.owner_id))
        return result.scalar_one_or_none()

    async def update_profile(self, full_name: Optional[str] = None, avatar_url: Optional[str] = None) -> bool:
        values = {}
        if full_name is not None:
            values["full_name"] = full_name
        if avatar_url is not None:
            values["avatar_url"] = avatar_url
        if not values:
            return True
        try:
            await self.db.execute(update(User).where(User.id == self.owner_id).values(**values))
        except SQLAlchemyError as e:
            logger.error(f"Record store: profile update failed for user {self.owner_id}: {e}", exc_info=True)
            await self.db.rollback()
            return False
        return await self._commit("profile update")

    # ── API credentials ───────────────────────────────────────────────

    async def load_credentials(self) -> Optional[ApiCredentials]:
        """The most recently saved active credential set, with the key decrypted."""
        result = await self.db.execute(
            select(ApiCredential)
            .where(ApiCredential.user_id == self.owner_id, ApiCredential.is_active == True)  # noqa: E712
            .order_by(ApiCredential.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if not row:
            return None
        return ApiCredentials(
            api_key=decrypt_value(row.api_key_encrypted),
            publisher_id=row.publisher_id,
            endpoint=row.endpoint,
        )

    async def save_credentials(self, creds: ApiCredentials) -> bool:
        """Deactivate every prior set for this user, then insert the new one, in one transaction."""
        try:
            await self.db.execute(
                update(ApiCredential)
                .where(ApiCredential.user_id == self.owner_id)
                .values(is_active=False)
            )
            self.db.add(ApiCredential(
                user_id=self.owner_id,
                api_key_encrypted=encrypt_value(creds.api_key),
                publisher_id=creds.publisher_id,
                endpoint=creds.endpoint,
                is_active=True,
            ))
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Record store: credential save failed for user {self.owner_id}: {e}", exc_info=True)
            await self.db.rollback()
            return False
        return await self._commit("credential save")

    # ── Campaign snapshot ─────────────────────────────────────────────

    async def list_campaigns(self) -> list[CampaignSnapshot]:
        result = await self.db.execute(
            select(CampaignSnapshot)
            .where(CampaignSnapshot.user_id == self.owner_id)
            .order_by(CampaignSnapshot.cpm.desc())
        )
        return list(result.scalars().all())

    async def replace_campaigns(self, campaigns: Iterable[CampaignRecord], selected_ids: Iterable[str] = ()) -> bool:
        """Delete the whole snapshot and insert the new listing. No diffing."""
        selected = set(selected_ids)
        try:
            await self.db.execute(delete(CampaignSnapshot).where(CampaignSnapshot.user_id == self.owner_id))
            for c in campaigns:
                self.db.add(CampaignSnapshot(
                    user_id=self.owner_id,
                    campaign_id=c.id,
                    name=c.name,
                    url=c.url,
                    cpm=c.cpm,
                    country=c.country,
                    device=c.device,
                    category=c.category,
                    status=c.status,
                    impressions=c.impressions,
                    clicks=c.clicks,
                    revenue=c.revenue,
                    is_selected=c.id in selected,
                    created_at=to_naive_utc(c.created_at),
                ))
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Record store: campaign snapshot replace failed for user {self.owner_id}: {e}", exc_info=True)
            await self.db.rollback()
            return False
        return await self._commit("campaign snapshot replace")

    async def set_selection(self, selected_ids: Iterable[str]) -> bool:
        selected = list(set(selected_ids))
        try:
            await self.db.execute(
                update(CampaignSnapshot)
                .where(CampaignSnapshot.user_id == self.owner_id)
                .values(is_selected=False)
            )
            if selected:
                await self.db.execute(
                    update(CampaignSnapshot)
                    .where(
                        CampaignSnapshot.user_id == self.owner_id,
                        CampaignSnapshot.campaign_id.in_(selected),
                    )
                    .values(is_selected=True)
                )
        except SQLAlchemyError as e:
            logger.error(f"Record store: selection update failed for user {self.owner_id}: {e}", exc_info=True)
            await self.db.rollback()
            return False
        return await self._commit("selection update")

    # ── Generated scripts ─────────────────────────────────────────────

    async def list_scripts(self) -> list[GeneratedScript]:
        """Newest first."""
        result = await self.db.execute(
            select(GeneratedScript)
            .where(GeneratedScript.user_id == self.owner_id)
            .order_by(GeneratedScript.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_script(self, script_id: uuid.UUID) -> Optional[GeneratedScript]:
        result = await self.db.execute(
            select(GeneratedScript).where(
                GeneratedScript.id == script_id,
                GeneratedScript.user_id == self.owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def save_script(
        self,
        name: str,
        code: str,
        config: PopunderConfig,
        campaign_ids: list[str],
        script_type: str,
    ) -> Optional[GeneratedScript]:
        """Insert a script. Returns the stored row, or None when the store rejected it."""
        script = GeneratedScript(
            user_id=self.owner_id,
            name=name,
            script_code=code,
            config=config.to_literal(),
            campaign_ids=list(campaign_ids),
            script_type=script_type,
        )
        try:
            self.db.add(script)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Record store: script save failed for user {self.owner_id}: {e}", exc_info=True)
            await self.db.rollback()
            return None
        if not await self._commit("script save"):
            return None
        return script

    async def delete_script(self, script_id: uuid.UUID) -> bool:
        try:
            await self.db.execute(
                delete(GeneratedScript).where(
                    GeneratedScript.id == script_id,
                    GeneratedScript.user_id == self.owner_id,
                )
            )
        except SQLAlchemyError as e:
            logger.error(f"Record store: script delete failed for user {self.owner_id}: {e}", exc_info=True)
            await self.db.rollback()
            return False
        return await self._commit("script delete")
