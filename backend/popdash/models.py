"""
Pop-under Studio — Database Models
Owner-scoped records: profiles, ad network credentials, campaign snapshots
and generated scripts. Every row outside `users` carries the owning user id.
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, BigInteger, Boolean, DateTime,
    JSON, ForeignKey, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from popdash.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class CampaignStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class DeviceClass(str, enum.Enum):
    MOBILE = "mobile"
    DESKTOP = "desktop"
    ALL = "all"


class ScriptVariant(str, enum.Enum):
    PRODUCTION = "production"
    PREVIEW = "preview"


# ══════════════════════════════════════════════════════════════════════
#  USERS: login identity + profile
# ══════════════════════════════════════════════════════════════════════

class User(Base):
    """Dashboard user. Doubles as the profile record."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str] = mapped_column(String(1024), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    credentials: Mapped[list["ApiCredential"]] = relationship("ApiCredential", back_populates="user", cascade="all, delete-orphan")
    campaigns: Mapped[list["CampaignSnapshot"]] = relationship("CampaignSnapshot", back_populates="user", cascade="all, delete-orphan")
    scripts: Mapped[list["GeneratedScript"]] = relationship("GeneratedScript", back_populates="user", cascade="all, delete-orphan")


# ══════════════════════════════════════════════════════════════════════
#  API CREDENTIALS: one active set per user
# ══════════════════════════════════════════════════════════════════════

class ApiCredential(Base):
    """Ad network API credentials. Saving a new set deactivates the old ones."""
    __tablename__ = "api_credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    api_key_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    publisher_id: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(1024), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    user: Mapped["User"] = relationship("User", back_populates="credentials")

    __table_args__ = (
        Index("ix_api_credentials_user_active", "user_id", "is_active"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGNS: Snapshot of the last listing, replaced wholesale on refresh
# ══════════════════════════════════════════════════════════════════════

class CampaignSnapshot(Base):
    """One campaign row from the most recent listing for a user."""
    __tablename__ = "campaigns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    campaign_id: Mapped[str] = mapped_column(String(255), nullable=False)  # network-side id
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    cpm: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    country: Mapped[str] = mapped_column(String(16), nullable=False, default="ALL")
    device: Mapped[str] = mapped_column(String(16), nullable=False, default=DeviceClass.ALL.value)
    category: Mapped[str] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=CampaignStatus.ACTIVE.value)
    impressions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_selected: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)  # network creation time
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    user: Mapped["User"] = relationship("User", back_populates="campaigns")

    __table_args__ = (
        UniqueConstraint("user_id", "campaign_id", name="uq_campaign_per_user"),
        Index("ix_campaigns_user_id", "user_id"),
        Index("ix_campaigns_cpm", "cpm"),
    )


# ══════════════════════════════════════════════════════════════════════
#  GENERATED SCRIPTS: immutable once saved
# ══════════════════════════════════════════════════════════════════════

class GeneratedScript(Base):
    """A saved pop-under snippet with the config and campaign ids it was built from."""
    __tablename__ = "generated_scripts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    script_code: Mapped[str] = mapped_column(Text, nullable=False)
    config: Mapped[dict] = mapped_column(JSON, nullable=False)
    campaign_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    script_type: Mapped[str] = mapped_column(String(16), nullable=False, default=ScriptVariant.PRODUCTION.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    user: Mapped["User"] = relationship("User", back_populates="scripts")

    __table_args__ = (
        Index("ix_generated_scripts_user_created", "user_id", "created_at"),
    )
