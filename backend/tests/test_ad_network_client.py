"""
Tests for the ad network client: listing, synthetic fallback and key validation.
"""

import random

import httpx
import pytest

from popdash.ad_network_client import (
    AdNetworkClient,
    AdNetworkError,
    MOCK_CATEGORIES,
    MOCK_CLICK_URL,
    MOCK_COUNTRIES,
    create_ad_network_client,
    generate_mock_campaigns,
)
from popdash.schemas import ApiCredentials

CREDS = ApiCredentials(api_key="secret-key-123", publisher_id="pub-42", endpoint="https://network.example.com/publisher")

RAW_CAMPAIGNS = [
    {"id": 1, "name": "Gaming Mobile", "url": "https://ads.example.com/1", "cpm": 2.4,
     "country": "us", "device": "Mobile", "status": "active", "impressions": 1000, "clicks": 20, "revenue": 0.05},
    {"campaignId": "2", "title": "Finance Desktop", "clickUrl": "https://ads.example.com/2", "cpm": "3.1",
     "deviceType": "desktop", "status": "paused"},
]


def _client(handler) -> AdNetworkClient:
    return AdNetworkClient(CREDS, timeout=1.0, transport=httpx.MockTransport(handler))


# ── Synthetic campaigns ───────────────────────────────────────────────

def test_mock_campaigns_shape():
    campaigns = generate_mock_campaigns(random.Random(7))
    assert 8 <= len(campaigns) <= 12
    for c in campaigns:
        assert 0.5 <= c.cpm <= 5.0
        assert 1000 <= c.impressions <= 50000
        assert 50 <= c.clicks <= c.impressions // 10
        assert c.revenue == round(c.clicks * c.cpm / 1000, 2)
        assert c.category in MOCK_CATEGORIES
        assert c.country in MOCK_COUNTRIES
        assert c.url.startswith(MOCK_CLICK_URL)
        assert c.name.startswith(c.category)
    cpms = [c.cpm for c in campaigns]
    assert cpms == sorted(cpms, reverse=True)


def test_mock_campaigns_reproducible_with_seed():
    first = generate_mock_campaigns(random.Random(99))
    second = generate_mock_campaigns(random.Random(99))
    assert [(c.id, c.cpm, c.url) for c in first] == [(c.id, c.cpm, c.url) for c in second]


# ── Listing ───────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_list_campaigns_sends_credentials():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["publisher"] = request.headers["Publisher-ID"]
        return httpx.Response(200, json={"campaigns": RAW_CAMPAIGNS})

    campaigns = await _client(handler).list_campaigns()
    assert seen == {
        "url": "https://network.example.com/publisher/campaigns",
        "auth": "Bearer secret-key-123",
        "publisher": "pub-42",
    }
    assert [c.id for c in campaigns] == ["1", "2"]
    assert campaigns[0].country == "US"
    assert campaigns[0].device == "mobile"
    assert campaigns[1].name == "Finance Desktop"
    assert campaigns[1].status == "paused"


@pytest.mark.anyio
async def test_list_campaigns_accepts_bare_list():
    campaigns = await _client(lambda r: httpx.Response(200, json=RAW_CAMPAIGNS)).list_campaigns()
    assert len(campaigns) == 2


@pytest.mark.anyio
@pytest.mark.parametrize("response", [
    httpx.Response(500, json={"error": "boom"}),
    httpx.Response(200, text="<html>maintenance</html>"),
    httpx.Response(200, json={"campaigns": "nope"}),
    httpx.Response(200, json={"campaigns": [{"id": "x"}]}),
])
async def test_list_campaigns_raises_on_bad_answer(response):
    with pytest.raises(AdNetworkError):
        await _client(lambda r: response).list_campaigns()


@pytest.mark.anyio
async def test_fetch_falls_back_to_synthetic_on_error():
    campaigns = await _client(lambda r: httpx.Response(503)).fetch_campaigns(rng=random.Random(3))
    assert 8 <= len(campaigns) <= 12
    assert all(c.url.startswith(MOCK_CLICK_URL) for c in campaigns)


@pytest.mark.anyio
async def test_fetch_falls_back_on_timeout():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    campaigns = await _client(handler).fetch_campaigns()
    assert 8 <= len(campaigns) <= 12


@pytest.mark.anyio
async def test_fetch_returns_real_campaigns_when_available():
    campaigns = await _client(lambda r: httpx.Response(200, json={"campaigns": RAW_CAMPAIGNS})).fetch_campaigns()
    assert [c.id for c in campaigns] == ["1", "2"]


# ── Key validation ────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_validate_ok_on_200():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"valid": True})

    assert await _client(handler).validate_api_key("abc") is True
    assert seen == {"url": "https://network.example.com/publisher/validate", "auth": "Bearer abc"}


@pytest.mark.anyio
async def test_validate_other_2xx_is_invalid():
    assert await _client(lambda r: httpx.Response(204)).validate_api_key("long-enough-key") is False


@pytest.mark.anyio
@pytest.mark.parametrize("key,expected", [
    ("abcdef", True),
    ("abcde", False),
    ("   abc   ", False),
    ("", False),
])
async def test_validate_falls_back_to_length_check(key, expected):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    assert await _client(handler).validate_api_key(key) is expected


@pytest.mark.anyio
async def test_validate_error_status_uses_length_check():
    client = _client(lambda r: httpx.Response(401))
    assert await client.validate_api_key("long-enough-key") is True
    assert await client.validate_api_key("short") is False


def test_factory_uses_default_endpoint():
    client = create_ad_network_client("key-123456", "pub-1", timeout=2.0)
    assert client.credentials.endpoint.startswith("https://")
    assert client.timeout == 2.0
