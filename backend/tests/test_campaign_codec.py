"""
Tests for the two-layer campaign payload embedded in snippets.
"""

import base64
import json

import pytest

from popdash.schemas import CampaignRecord
from popdash.services.campaign_codec import (
    PayloadDecodeError,
    b64decode_text,
    decode_campaigns,
    encode_campaigns,
)


def _campaigns():
    return [
        CampaignRecord(
            id="abc12345", name="Café Rewards", url="https://ads.example.com/click/é?src=popdash&x=1",
            cpm=3.25, country="FR", device="mobile", category="Shopping", status="active",
            impressions=2000, clicks=40, revenue=0.13,
        ),
        CampaignRecord(
            id="def67890", name="Finance Desktop", url="https://ads.example.com/click/f",
            cpm=1.1, country="ALL", device="desktop", status="paused",
        ),
    ]


def test_decode_restores_campaigns_exactly():
    campaigns = _campaigns()
    assert decode_campaigns(encode_campaigns(campaigns)) == campaigns


def test_urls_do_not_appear_in_plain_text():
    payload = encode_campaigns(_campaigns())
    outer = b64decode_text(payload)
    assert "ads.example.com" not in payload
    assert "ads.example.com" not in outer


def test_inner_records_use_camel_case_and_encoded_url():
    records = json.loads(b64decode_text(encode_campaigns(_campaigns())))
    assert records[0]["createdAt"]
    assert base64.b64decode(records[0]["url"]).decode("utf-8") == "https://ads.example.com/click/é?src=popdash&x=1"


def test_empty_list():
    assert decode_campaigns(encode_campaigns([])) == []


@pytest.mark.parametrize("payload", [
    "not base64!",
    base64.b64encode(b"{not json").decode(),
    base64.b64encode(b'[{"id": "x"}]').decode(),
    base64.b64encode(b'[{"id": "x", "name": "n", "cpm": 1, "url": "@@@"}]').decode(),
])
def test_bad_payload_raises(payload):
    with pytest.raises(PayloadDecodeError):
        decode_campaigns(payload)
