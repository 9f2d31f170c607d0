"""
Campaign payload codec for generated snippets.

Two reversible layers: each campaign's `url` is base64-encoded, then the whole
list is serialized to compact JSON and base64-encoded again. This is
obfuscation so the destination URLs don't sit in plain sight in the page
source. It is not security.
"""

import base64
import json
from typing import Iterable

from popdash.schemas import CampaignRecord


class PayloadDecodeError(ValueError):
    """The embedded payload is not a valid two-layer campaign encoding."""
    pass


def b64encode_text(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def b64decode_text(data: str) -> str:
    return base64.b64decode(data.encode("ascii"), validate=True).decode("utf-8")


def encode_campaigns(campaigns: Iterable[CampaignRecord]) -> str:
    records = []
    for campaign in campaigns:
        item = campaign.model_dump(mode="json", by_alias=True)
        item["url"] = b64encode_text(campaign.url)
        records.append(item)
    return b64encode_text(json.dumps(records, separators=(",", ":"), ensure_ascii=False))


def decode_campaigns(payload: str) -> list[CampaignRecord]:
    """Outer-decode → parse → inner-decode each url. Exact inverse of encode_campaigns."""
    try:
        records = json.loads(b64decode_text(payload))
        return [
            CampaignRecord.model_validate({**item, "url": b64decode_text(item["url"])})
            for item in records
        ]
    except (ValueError, KeyError, TypeError) as e:
        raise PayloadDecodeError(f"Invalid campaign payload: {e}") from e
