"""
Pop-under Generator — turns selected campaigns + a config into an embeddable snippet.

Generation is two steps:
- build_program() assembles a PopunderProgram: the config literal, the encoded
  campaign payload and every constant of the runtime contract.
- render_javascript() emits that program as a dependency-free IIFE that a
  publisher pastes into any page.

Preview programs always run in test mode, so a preview snippet can never open
a real window.
"""

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from string import Template
from typing import Any, Iterable, Optional

from popdash.config import get_settings
from popdash.schemas import CampaignRecord, PopunderConfig
from popdash.services.campaign_codec import encode_campaigns
from popdash.services.popunder_runtime import (
    COUNTRY_BY_TIMEZONE,
    MAX_SCROLL_PERCENT,
    MAX_TIME_DELAY,
    MOBILE_PATTERN,
    OPEN_EVENT,
    TABLET_PATTERN,
    WINDOW_FEATURES,
    BrowserHost,
    PopunderRuntime,
)

logger = logging.getLogger(__name__)

VARIANTS = ("production", "preview")


@dataclass(frozen=True)
class PopunderProgram:
    """Everything a rendered snippet contains, before it becomes source text."""

    config: dict[str, Any]
    payload: str
    variant: str
    campaign_ids: tuple[str, ...]
    session_key: str
    analytics_url: str
    window_features: str = WINDOW_FEATURES
    tablet_pattern: str = TABLET_PATTERN
    mobile_pattern: str = MOBILE_PATTERN
    country_by_timezone: dict[str, str] = field(default_factory=lambda: dict(COUNTRY_BY_TIMEZONE))

    def runtime(self, host: BrowserHost) -> PopunderRuntime:
        """A Python instance of this program running against `host`."""
        return PopunderRuntime(
            config=self.config,
            payload=self.payload,
            host=host,
            session_key=self.session_key,
            analytics_url=self.analytics_url,
        )


def build_program(
    campaigns: Iterable[CampaignRecord],
    config: PopunderConfig,
    variant: str = "production",
    session_key: Optional[str] = None,
    analytics_url: Optional[str] = None,
) -> PopunderProgram:
    if variant not in VARIANTS:
        raise ValueError(f"Unknown script variant: {variant!r}. Use production or preview.")
    settings = get_settings()
    campaigns = list(campaigns)
    if variant == "preview":
        config = config.model_copy(update={"test_mode": True})
    return PopunderProgram(
        config=config.to_literal(),
        payload=encode_campaigns(campaigns),
        variant=variant,
        campaign_ids=tuple(c.id for c in campaigns),
        session_key=session_key or settings.popunder_session_key,
        analytics_url=analytics_url or settings.popunder_analytics_url,
    )


# ── JavaScript emitter ────────────────────────────────────────────────
# Placeholders are $name; the template itself must not contain a bare "$".
_JS_TEMPLATE = Template("""
(function() {
    'use strict';

    // Pop-under settings
    var config = $config;

    // Encoded campaigns
    var campaigns = $payload;

    var SESSION_KEY = $session_key;
    var ANALYTICS_URL = $analytics_url;
    var OPEN_EVENT = $open_event;
    var WINDOW_FEATURES = $window_features;
    var TABLET_PATTERN = new RegExp($tablet_pattern, 'i');
    var MOBILE_PATTERN = new RegExp($mobile_pattern, 'i');
    var COUNTRY_BY_TIMEZONE = $country_by_timezone;
    var MAX_TIME_DELAY = $max_time_delay;
    var MAX_SCROLL_PERCENT = $max_scroll_percent;

    var hasTriggered = false;

    function decodeBase64(encoded) {
        var binary = atob(encoded);
        if (typeof TextDecoder === 'undefined') {
            return binary;
        }
        var bytes = new Uint8Array(binary.length);
        for (var i = 0; i < binary.length; i++) {
            bytes[i] = binary.charCodeAt(i);
        }
        return new TextDecoder('utf-8').decode(bytes);
    }

    function decodeCampaigns(encoded) {
        return JSON.parse(decodeBase64(encoded)).map(function(campaign) {
            campaign.url = decodeBase64(campaign.url);
            return campaign;
        });
    }

    function clampNumber(value, max) {
        var number = Number(value);
        if (!isFinite(number) || number < 0) return 0;
        return number > max ? max : number;
    }

    function readSessionFlag() {
        try {
            return window.sessionStorage.getItem(SESSION_KEY) === 'true';
        } catch (e) {
            return false;
        }
    }

    function writeSessionFlag() {
        try {
            window.sessionStorage.setItem(SESSION_KEY, 'true');
        } catch (e) {}
    }

    function getDeviceType() {
        var ua = navigator.userAgent || '';
        if (TABLET_PATTERN.test(ua)) return 'tablet';
        if (MOBILE_PATTERN.test(ua)) return 'mobile';
        return 'desktop';
    }

    function getUserCountry() {
        var zone = '';
        try {
            zone = Intl.DateTimeFormat().resolvedOptions().timeZone || '';
        } catch (e) {}
        return Object.prototype.hasOwnProperty.call(COUNTRY_BY_TIMEZONE, zone) ? COUNTRY_BY_TIMEZONE[zone] : 'ALL';
    }

    function selectBestCampaign() {
        var decoded = decodeCampaigns(campaigns);
        var deviceType = getDeviceType();
        var userCountry = getUserCountry();
        var minCpm = clampNumber(config.minCpm, Infinity);

        var candidates = decoded.filter(function(campaign) {
            var deviceMatch = campaign.device === 'all' || campaign.device === deviceType;
            var countryMatch = campaign.country === 'ALL' || campaign.country === userCountry;
            return deviceMatch && countryMatch && campaign.cpm >= minCpm && campaign.status === 'active';
        });

        if (candidates.length === 0) {
            candidates = decoded.filter(function(campaign) {
                return campaign.status === 'active';
            });
        }

        // Highest CPM first; the sort is stable so ties keep their order
        candidates.sort(function(a, b) {
            return b.cpm - a.cpm;
        });

        return candidates[0] || null;
    }

    function reportOpen(url) {
        try {
            fetch(ANALYTICS_URL, {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({
                    action: OPEN_EVENT,
                    url: url,
                    timestamp: Date.now()
                })
            }).catch(function() {});
        } catch (e) {}
    }

    function openPopunder(url) {
        if (config.testMode) {
            console.log('Pop-under test mode, would open:', url);
            return;
        }

        try {
            var popup = window.open(url, '_blank', WINDOW_FEATURES);
            if (popup) {
                popup.blur();
                window.focus();
                writeSessionFlag();
                reportOpen(url);
            }
        } catch (error) {
            console.error('Pop-under failed to open:', error);
        }
    }

    function canTrigger() {
        if (config.frequency === 'once' && hasTriggered) return false;
        if (config.frequency === 'session' && readSessionFlag()) return false;
        return true;
    }

    function triggerPopunder() {
        if (!canTrigger()) return;

        var best;
        try {
            best = selectBestCampaign();
        } catch (error) {
            console.error('Pop-under payload unreadable:', error);
            return;
        }
        if (!best) {
            console.warn('No suitable campaign found');
            return;
        }

        openPopunder(best.url);
        hasTriggered = true;
    }

    function isInternalLink(target) {
        var link = target && target.closest ? target.closest('a') : null;
        return !!link && link.hostname === window.location.hostname;
    }

    function setupTriggers() {
        switch (config.triggerType) {
            case 'click':
                var onClick = function(e) {
                    if (isInternalLink(e.target)) return;
                    if (config.frequency === 'once') {
                        document.removeEventListener('click', onClick);
                    }
                    triggerPopunder();
                };
                document.addEventListener('click', onClick);
                break;

            case 'time':
                setTimeout(triggerPopunder, clampNumber(config.delay, MAX_TIME_DELAY) * 1000);
                break;

            case 'scroll':
                var scrollTriggered = false;
                var threshold = clampNumber(config.delay, MAX_SCROLL_PERCENT);
                window.addEventListener('scroll', function() {
                    if (scrollTriggered) return;

                    var scrollable = document.body.scrollHeight - window.innerHeight;
                    var percent = scrollable > 0 ? (window.scrollY / scrollable) * 100 : 100;
                    if (percent >= threshold) {
                        scrollTriggered = true;
                        triggerPopunder();
                    }
                });
                break;
        }
    }

    if (document.readyState === 'loading') {
        document.addEventListener('DOMContentLoaded', setupTriggers);
    } else {
        setupTriggers();
    }

})();""")


_HTML_SAFE = str.maketrans({"<": "\\u003c", ">": "\\u003e", "&": "\\u0026"})


def _js(value: Any, indent: Optional[int] = None) -> str:
    """
    A JSON literal is a valid JavaScript expression. `<`, `>` and `&` are
    escaped so a literal cannot close the host page's <script> element;
    json.dumps already escapes U+2028 and U+2029.
    """
    text = json.dumps(value, indent=indent).translate(_HTML_SAFE)
    if indent:
        text = text.replace("\n", "\n    ")
    return text


def render_javascript(program: PopunderProgram) -> str:
    return _JS_TEMPLATE.substitute(
        config=_js(program.config, indent=2),
        payload=_js(program.payload),
        session_key=_js(program.session_key),
        analytics_url=_js(program.analytics_url),
        open_event=_js(OPEN_EVENT),
        window_features=_js(program.window_features),
        tablet_pattern=_js(program.tablet_pattern),
        mobile_pattern=_js(program.mobile_pattern),
        country_by_timezone=_js(program.country_by_timezone),
        max_time_delay=MAX_TIME_DELAY,
        max_scroll_percent=MAX_SCROLL_PERCENT,
    )


class PopunderGenerator:
    """Convenience facade over build_program + render_javascript."""

    def __init__(self, session_key: Optional[str] = None, analytics_url: Optional[str] = None):
        self.session_key = session_key
        self.analytics_url = analytics_url

    def build(self, campaigns: Iterable[CampaignRecord], config: PopunderConfig, variant: str = "production") -> PopunderProgram:
        return build_program(
            campaigns, config, variant,
            session_key=self.session_key,
            analytics_url=self.analytics_url,
        )

    def generate(self, campaigns: Iterable[CampaignRecord], config: PopunderConfig, variant: str = "production") -> str:
        program = self.build(campaigns, config, variant)
        script = render_javascript(program)
        logger.info(f"Generated {variant} snippet: {len(program.campaign_ids)} campaigns, {len(script)} bytes")
        return script

    def generate_script(self, campaigns: Iterable[CampaignRecord], config: PopunderConfig) -> str:
        return self.generate(campaigns, config, "production")

    def generate_preview_script(self, campaigns: Iterable[CampaignRecord], config: PopunderConfig) -> str:
        return self.generate(campaigns, config, "preview")


def script_filename(name: str) -> str:
    """Download name for a snippet: whitespace runs become underscores, `.js` appended."""
    stem = re.sub(r"\s+", "_", name.strip())
    stem = re.sub(r"[\\/\"']", "", stem)
    return f"{stem or 'popunder'}.js"


def script_size_kb(script: str) -> float:
    return round(len(script.encode("utf-8")) / 1024, 1)


def ascii_filename(filename: str) -> str:
    """ASCII-only version of a download name, for clients that ignore `filename*`."""
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        stem, ext = filename, "js"
    folded = unicodedata.normalize("NFKD", stem).encode("ascii", "ignore").decode("ascii")
    folded = re.sub(r"[^\w.-]", "", folded).strip("_.-")
    return f"{folded or 'popunder'}.{ext}"
