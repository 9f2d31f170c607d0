"""
Ad Network Client
Lists a publisher's campaigns from the ad network's REST API and validates API keys.
When the network is unreachable, falls back to synthetic campaigns so the
dashboard always has something to work with.
"""

import logging
import random
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from popdash.config import get_settings
from popdash.schemas import ApiCredentials, CampaignRecord, normalize_campaign

logger = logging.getLogger(__name__)

# ── Synthetic campaign pools ──────────────────────────────────────────
MOCK_CATEGORIES = ["Gaming", "Finance", "Technology", "Health", "Education", "Entertainment", "Shopping"]
MOCK_COUNTRIES = ["US", "CA", "UK", "DE", "FR", "AU", "BR", "ALL"]
MOCK_DEVICES = ["mobile", "desktop", "all"]
# Weighted toward active: 3 active : 1 paused : 1 expired
MOCK_STATUSES = ["active", "active", "active", "paused", "expired"]
MOCK_CLICK_URL = "https://adsterra.com/click/"
DEVICE_LABELS = {"all": "Universal", "mobile": "Mobile", "desktop": "Desktop"}

MIN_VALID_KEY_LENGTH = 5


class AdNetworkError(Exception):
    """Raised when the ad network API call fails or returns an unusable body."""
    pass


def _alphanumeric(rng: random.Random, length: int) -> str:
    return "".join(rng.choices(string.ascii_letters + string.digits, k=length))


def generate_mock_campaigns(rng: Optional[random.Random] = None) -> list[CampaignRecord]:
    """
    Build 8–12 synthetic campaigns, sorted by CPM (highest first).

    Pass a seeded `random.Random` for reproducible output.
    """
    rng = rng or random.Random()
    now = datetime.now(timezone.utc)
    campaigns = []

    for _ in range(rng.randint(8, 12)):
        category = rng.choice(MOCK_CATEGORIES)
        device = rng.choice(MOCK_DEVICES)
        impressions = rng.randint(1000, 50000)
        clicks = rng.randint(50, impressions // 10)
        cpm = round(rng.uniform(0.5, 5.0), 2)
        campaigns.append(CampaignRecord(
            id=_alphanumeric(rng, 8),
            name=f"{category} {DEVICE_LABELS[device]}",
            url=MOCK_CLICK_URL + _alphanumeric(rng, 12),
            cpm=cpm,
            country=rng.choice(MOCK_COUNTRIES),
            device=device,
            category=category,
            status=rng.choice(MOCK_STATUSES),
            impressions=impressions,
            clicks=clicks,
            revenue=round(clicks * cpm / 1000, 2),
            created_at=now - timedelta(seconds=rng.randint(0, 30 * 24 * 3600)),
        ))

    return sorted(campaigns, key=lambda c: c.cpm, reverse=True)


class AdNetworkClient:
    """
    Wrapper around the ad network publisher API.
    Each instance is configured with one credential set.
    """

    def __init__(
        self,
        credentials: ApiCredentials,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.timeout = timeout if timeout is not None else get_settings().campaign_api_timeout
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.api_key}",
            "Publisher-ID": self.credentials.publisher_id,
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def list_campaigns(self) -> list[CampaignRecord]:
        """GET {endpoint}/campaigns. Raises AdNetworkError on any failure."""
        url = f"{self.credentials.endpoint}/campaigns"
        try:
            async with self._client() as client:
                response = await client.get(url, headers=self.headers)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise AdNetworkError(f"Campaign listing failed: {e}") from e

        items = body.get("campaigns") if isinstance(body, dict) else body
        if not isinstance(items, list):
            raise AdNetworkError(f"Unexpected campaign listing body: {type(body).__name__}")
        try:
            return [normalize_campaign(item) for item in items]
        except (ValidationError, AttributeError, TypeError) as e:
            raise AdNetworkError(f"Malformed campaign record: {e}") from e

    async def fetch_campaigns(self, rng: Optional[random.Random] = None) -> list[CampaignRecord]:
        """Real campaigns when the API answers, synthetic ones otherwise. Never raises."""
        try:
            campaigns = await self.list_campaigns()
            logger.info(f"Fetched {len(campaigns)} campaigns from {self.credentials.endpoint}")
            return campaigns
        except AdNetworkError as e:
            logger.warning(f"Ad network unreachable, using synthetic campaigns: {e}")
            return generate_mock_campaigns(rng)

    async def validate_api_key(self, api_key: Optional[str] = None) -> bool:
        """
        GET {endpoint}/validate with the key as bearer token; valid only on HTTP 200.

        If the endpoint is unreachable or answers with an error status, any key longer than five
        characters is accepted. That fallback is a usability shortcut, not a
        security check.
        """
        api_key = api_key if api_key is not None else self.credentials.api_key
        url = f"{self.credentials.endpoint}/validate"
        try:
            async with self._client() as client:
                response = await client.get(
                    url,
                    headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                )
                response.raise_for_status()
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Key validation failed upstream, falling back to length check: {e}")
            return bool(api_key) and len(api_key.strip()) > MIN_VALID_KEY_LENGTH


def create_ad_network_client(
    api_key: str,
    publisher_id: str,
    endpoint: Optional[str] = None,
    **kwargs: Any,
) -> AdNetworkClient:
    """Factory function to create a configured client."""
    credentials = ApiCredentials(
        api_key=api_key,
        publisher_id=publisher_id,
        endpoint=endpoint or get_settings().default_campaign_endpoint,
    )
    return AdNetworkClient(credentials, **kwargs)
