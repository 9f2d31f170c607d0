"""
Pop-under Runtime — the behaviour every generated snippet implements.

The snippet runs later inside a third-party page with no link back to the
dashboard. This module holds the constants the emitter writes into the
snippet, plus a Python model of its selection algorithm and trigger state
machine. The dashboard uses the model to simulate a snippet before it is
deployed; tests use it to pin the contract down.

State machine, per page load:

    idle ──trigger──▶ triggered

`once` suppresses re-triggering for the rest of the page (in-memory flag),
`session` suppresses it for the browser session (session-storage flag),
`always` never suppresses.
"""

import math
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from popdash.schemas import WILDCARD_COUNTRY, CampaignRecord
from popdash.services.campaign_codec import decode_campaigns


# ── Device classification ─────────────────────────────────────────────
# Tablet is checked first: most tablet user agents also say "mobile" or "android".
TABLET_PATTERN = r"tablet|ipad|playbook|silk"
MOBILE_PATTERN = r"mobile|iphone|ipod|android|blackberry|opera|mini|windows\sce|palm|smartphone|iemobile"
_TABLET_RE = re.compile(TABLET_PATTERN, re.IGNORECASE)
_MOBILE_RE = re.compile(MOBILE_PATTERN, re.IGNORECASE)

# ── Country inference from the browser timezone ───────────────────────
COUNTRY_BY_TIMEZONE = {
    "America/New_York": "US",
    "America/Chicago": "US",
    "America/Denver": "US",
    "America/Los_Angeles": "US",
    "America/Toronto": "CA",
    "America/Vancouver": "CA",
    "America/Sao_Paulo": "BR",
    "Europe/London": "UK",
    "Europe/Paris": "FR",
    "Europe/Berlin": "DE",
    "Asia/Tokyo": "JP",
    "Australia/Sydney": "AU",
    "Australia/Melbourne": "AU",
}

# ── Display ───────────────────────────────────────────────────────────
WINDOW_WIDTH = 800
WINDOW_HEIGHT = 600
WINDOW_FEATURES = (
    "toolbar=no,location=no,status=no,menubar=no,scrollbars=yes,resizable=yes,"
    f"width={WINDOW_WIDTH},height={WINDOW_HEIGHT}"
)
OPEN_EVENT = "popunder_opened"

MAX_TIME_DELAY = 60  # seconds
MAX_SCROLL_PERCENT = 100


def classify_device(user_agent: Optional[str]) -> str:
    """'tablet', 'mobile' or 'desktop'."""
    ua = user_agent or ""
    if _TABLET_RE.search(ua):
        return "tablet"
    if _MOBILE_RE.search(ua):
        return "mobile"
    return "desktop"


def infer_country(timezone_name: Optional[str]) -> str:
    return COUNTRY_BY_TIMEZONE.get(timezone_name or "", WILDCARD_COUNTRY)


def campaign_matches(campaign: CampaignRecord, device: str, country: str, min_cpm: float) -> bool:
    # Plain equality: a tablet only matches campaigns targeting "all"
    device_match = campaign.device == "all" or campaign.device == device
    country_match = campaign.country == WILDCARD_COUNTRY or campaign.country == country
    return device_match and country_match and campaign.cpm >= min_cpm and campaign.is_active


def select_best_campaign(
    campaigns: Sequence[CampaignRecord],
    device: str,
    country: str,
    min_cpm: float,
) -> Optional[CampaignRecord]:
    """
    Pick the campaign to show.

    1. Keep active campaigns matching device, country and minimum CPM.
    2. If none match, fall back to every active campaign.
    3. Highest CPM wins; equal CPMs keep their original order.

    Returns None only when there is no active campaign at all.
    """
    candidates = [c for c in campaigns if campaign_matches(c, device, country, min_cpm)]
    if not candidates:
        candidates = [c for c in campaigns if c.is_active]
    candidates = sorted(candidates, key=lambda c: c.cpm, reverse=True)
    return candidates[0] if candidates else None


def clamp_number(value: Any, upper: float) -> float:
    """Coerce a configured number into [0, upper]; garbage becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return min(number, float(upper))


def scroll_percent(scroll_y: float, scroll_height: float, viewport_height: float) -> float:
    scrollable = scroll_height - viewport_height
    if scrollable <= 0:
        # Nothing to scroll: the whole page is already in view
        return 100.0
    return scroll_y / scrollable * 100


class BrowserHost(ABC):
    """The page environment a snippet runs in. Subclass to provide one."""

    user_agent: str = ""
    timezone: str = ""

    @abstractmethod
    def open_window(self, url: str, features: str) -> bool:
        """Open a pop-under behind the page. False when the browser blocked it."""
        raise NotImplementedError

    @abstractmethod
    def focus_page(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def session_get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def session_set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def send_beacon(self, url: str, payload: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    def log(self, message: str) -> None:
        raise NotImplementedError


class RecordingHost(BrowserHost):
    """In-memory host that records every side effect instead of performing it."""

    def __init__(
        self,
        user_agent: str = "",
        timezone: str = "",
        session: Optional[dict[str, str]] = None,
        block_popups: bool = False,
        fail_open: bool = False,
        fail_beacon: bool = False,
    ):
        self.user_agent = user_agent
        self.timezone = timezone
        self.session = session if session is not None else {}
        self.block_popups = block_popups
        self.fail_open = fail_open
        self.fail_beacon = fail_beacon
        self.opened: list[tuple[str, str]] = []
        self.beacons: list[tuple[str, dict]] = []
        self.logs: list[str] = []
        self.focus_count = 0

    def open_window(self, url: str, features: str) -> bool:
        if self.fail_open:
            raise RuntimeError("window.open is not available")
        if self.block_popups:
            return False
        self.opened.append((url, features))
        return True

    def focus_page(self) -> None:
        self.focus_count += 1

    def session_get(self, key: str) -> Optional[str]:
        return self.session.get(key)

    def session_set(self, key: str, value: str) -> None:
        self.session[key] = value

    def send_beacon(self, url: str, payload: dict) -> None:
        if self.fail_beacon:
            raise ConnectionError("analytics endpoint unreachable")
        self.beacons.append((url, payload))

    def log(self, message: str) -> None:
        self.logs.append(message)


class PopunderRuntime:
    """
    One snippet instance on one page load.

    `config` is the camelCase literal embedded in the snippet. Missing keys
    fall back to the defaults.
    """

    def __init__(
        self,
        config: dict[str, Any],
        payload: str,
        host: BrowserHost,
        session_key: str,
        analytics_url: str,
    ):
        self.config = config
        self.payload = payload
        self.host = host
        self.session_key = session_key
        self.analytics_url = analytics_url
        self.has_triggered = False
        self.scroll_triggered = False
        self.click_listener_active = self.trigger_type == "click"

    # ── Config accessors ──────────────────────────────────────────────

    @property
    def trigger_type(self) -> str:
        return self.config.get("triggerType", "click")

    @property
    def frequency(self) -> str:
        return self.config.get("frequency", "session")

    @property
    def test_mode(self) -> bool:
        return bool(self.config.get("testMode"))

    @property
    def min_cpm(self) -> float:
        return clamp_number(self.config.get("minCpm"), math.inf)

    @property
    def timer_delay_seconds(self) -> float:
        return clamp_number(self.config.get("delay"), MAX_TIME_DELAY)

    @property
    def scroll_threshold(self) -> float:
        return clamp_number(self.config.get("delay"), MAX_SCROLL_PERCENT)

    # ── Selection ─────────────────────────────────────────────────────

    def device_type(self) -> str:
        return classify_device(self.host.user_agent)

    def user_country(self) -> str:
        return infer_country(self.host.timezone)

    def select_best_campaign(self) -> Optional[CampaignRecord]:
        return select_best_campaign(
            decode_campaigns(self.payload),
            self.device_type(),
            self.user_country(),
            self.min_cpm,
        )

    # ── State machine ─────────────────────────────────────────────────

    def session_triggered(self) -> bool:
        return self.host.session_get(self.session_key) == "true"

    def can_trigger(self) -> bool:
        if self.frequency == "once" and self.has_triggered:
            return False
        if self.frequency == "session" and self.session_triggered():
            return False
        return True

    def trigger(self) -> bool:
        """Run one trigger attempt. True when a campaign was handed to the display step."""
        if not self.can_trigger():
            return False
        try:
            best = self.select_best_campaign()
        except ValueError as e:
            self.host.log(f"Pop-under payload unreadable: {e}")
            return False
        if best is None:
            self.host.log("No suitable campaign found")
            return False
        self.open_popunder(best.url)
        self.has_triggered = True
        return True

    def open_popunder(self, url: str) -> None:
        if self.test_mode:
            self.host.log(f"Test mode, would open: {url}")
            return
        try:
            if self.host.open_window(url, WINDOW_FEATURES):
                self.host.focus_page()
                self.host.session_set(self.session_key, "true")
                self._report_open(url)
        except Exception as e:
            self.host.log(f"Pop-under failed to open: {e}")

    def _report_open(self, url: str) -> None:
        try:
            self.host.send_beacon(self.analytics_url, {
                "action": OPEN_EVENT,
                "url": url,
                "timestamp": int(time.time() * 1000),
            })
        except Exception:
            pass

    # ── Trigger wiring ────────────────────────────────────────────────

    def on_click(self, internal_link: bool = False) -> bool:
        """A document click. Clicks on same-origin links are ignored."""
        if not self.click_listener_active or internal_link:
            return False
        if self.frequency == "once":
            self.click_listener_active = False
        return self.trigger()

    def on_timer(self) -> bool:
        """The one-shot timer scheduled `timer_delay_seconds` after load."""
        if self.trigger_type != "time":
            return False
        return self.trigger()

    def on_scroll(self, scroll_y: float, scroll_height: float, viewport_height: float) -> bool:
        if self.trigger_type != "scroll" or self.scroll_triggered:
            return False
        if scroll_percent(scroll_y, scroll_height, viewport_height) < self.scroll_threshold:
            return False
        self.scroll_triggered = True
        return self.trigger()
