"""
Shared data shapes: campaign records, pop-under configuration, API credentials.

Field names are snake_case in Python and camelCase on the wire, which is also
what the generated snippet sees after decoding its embedded payload.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DeviceTarget = Literal["mobile", "desktop", "all"]
CampaignStatusValue = Literal["active", "paused", "expired"]
TriggerTypeValue = Literal["click", "time", "scroll"]
FrequencyValue = Literal["once", "session", "always"]
VariantValue = Literal["production", "preview"]

WILDCARD_COUNTRY = "ALL"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CampaignRecord(BaseModel):
    """One ad placement as listed by the ad network. Immutable once fetched."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    url: str
    cpm: float = Field(ge=0)
    country: str = WILDCARD_COUNTRY
    device: DeviceTarget = "all"
    category: str = ""
    status: CampaignStatusValue = "active"
    impressions: int = Field(default=0, ge=0)
    clicks: int = Field(default=0, ge=0)
    revenue: float = Field(default=0.0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def ctr(self) -> float:
        """Click-through rate as a fraction. Always derived, never stored."""
        if self.impressions > 0:
            return self.clicks / self.impressions
        return 0.0

    @property
    def ctr_display(self) -> str:
        """CTR as a percentage with two decimals, e.g. "2.50"."""
        if self.impressions > 0:
            return f"{self.clicks / self.impressions * 100:.2f}"
        return "0.00"

    @property
    def is_active(self) -> bool:
        return self.status == "active"


_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "campaign_id", "campaignId"),
    "name": ("name", "title", "campaign_name", "campaignName"),
    "url": ("url", "click_url", "clickUrl", "link"),
    "cpm": ("cpm", "ecpm", "eCPM"),
    "country": ("country", "country_code", "countryCode", "geo"),
    "device": ("device", "device_type", "deviceType"),
    "category": ("category", "vertical"),
    "status": ("status", "state"),
    "impressions": ("impressions", "views"),
    "clicks": ("clicks",),
    "revenue": ("revenue", "income"),
    "created_at": ("created_at", "createdAt", "creation_date"),
}


def normalize_campaign(raw: dict[str, Any]) -> CampaignRecord:
    """
    Map a network-side campaign payload onto a CampaignRecord.
    Accepts snake_case or camelCase keys and a few common synonyms;
    raises pydantic.ValidationError when required fields are missing.
    """
    data: dict[str, Any] = {}
    for field, keys in _FIELD_ALIASES.items():
        for key in keys:
            if raw.get(key) is not None:
                data[field] = raw[key]
                break

    if "id" in data:
        data["id"] = str(data["id"])
    if isinstance(data.get("device"), str):
        data["device"] = data["device"].lower()
    if isinstance(data.get("status"), str):
        data["status"] = data["status"].lower()
    if isinstance(data.get("country"), str):
        data["country"] = data["country"].upper() or WILDCARD_COUNTRY
    return CampaignRecord.model_validate(data)


class PopunderConfig(BaseModel):
    """
    Pop-under behaviour configuration. Every field is required so the stored
    blob and the generated snippet can never drift apart.

    `delay` is seconds for the time trigger and a scroll percentage for the
    scroll trigger. It is not range-checked here; the snippet
    clamps it at runtime.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    trigger_type: TriggerTypeValue
    delay: int
    frequency: FrequencyValue
    geo_targeting: list[str]
    device_targeting: list[str]
    min_cpm: float = Field(ge=0)
    test_mode: bool

    @classmethod
    def default(cls) -> "PopunderConfig":
        return cls(
            trigger_type="click",
            delay=0,
            frequency="session",
            geo_targeting=[],
            device_targeting=[],
            min_cpm=1.0,
            test_mode=True,
        )

    def to_literal(self) -> dict[str, Any]:
        """The camelCase dict embedded in generated scripts and stored with them."""
        return self.model_dump(mode="json", by_alias=True)


class ApiCredentials(BaseModel):
    """Ad network credentials as entered by the publisher (plaintext, in memory only)."""

    api_key: str
    publisher_id: str
    endpoint: str

    @field_validator("endpoint")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")
