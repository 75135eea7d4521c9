"""
Bot-challenge detection and recovery.

The map site answers suspicious traffic with an interstitial ("unusual
traffic" page, reCAPTCHA). A challenge is not an error: the crawler backs
off for a cooldown period, reloads, and carries on with whatever it gets.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..constants import CHALLENGE_COOLDOWN_SECONDS

logger = logging.getLogger(__name__)


# =============================================================================
# Challenge Detection Selectors
# =============================================================================

CHALLENGE_INDICATORS = {
    # reCAPTCHA
    "recaptcha_iframe": "iframe[src*='recaptcha'], iframe[title*='reCAPTCHA']",
    "recaptcha_checkbox": ".g-recaptcha, #recaptcha-anchor",
    # Google "sorry" interstitial
    "captcha_form": "form#captcha-form",
    # hCaptcha / Cloudflare, seen behind some proxies
    "hcaptcha_iframe": "iframe[src*='hcaptcha']",
    "cloudflare_turnstile": "iframe[src*='challenges.cloudflare']",
}

# URL fragments that indicate a challenge page
CHALLENGE_URL_PATTERNS = [
    "/sorry/",
    "captcha",
    "challenge",
    "blocked",
    "security-check",
]

# Body text of the interstitial, lower-case
CHALLENGE_TEXT_PATTERNS = [
    "unusual traffic",
    "trafico inusual",
    "tráfico inusual",
    "not a robot",
    "no soy un robot",
]


def detect_challenge_in(url: str, html: str, matched_selector: Optional[str] = None) -> Optional[str]:
    """
    Classify a page snapshot as a challenge.

    Args:
        url: Current page URL
        html: Page HTML
        matched_selector: Name of a CHALLENGE_INDICATORS entry already found on the page

    Returns:
        Name of the detected challenge type, or None
    """
    lower_url = (url or "").lower()
    for pattern in CHALLENGE_URL_PATTERNS:
        if pattern in lower_url:
            return f"url_pattern:{pattern.strip('/')}"

    if matched_selector:
        return matched_selector

    lower_html = (html or "").lower()
    for pattern in CHALLENGE_TEXT_PATTERNS:
        if pattern in lower_html:
            return f"text:{pattern}"

    return None


async def detect_challenge(page: Any) -> Optional[str]:
    """
    Detect whether a Playwright page is showing a bot challenge.

    Returns:
        Name of detected challenge type, or None if no challenge found
    """
    matched = None
    for name, selector in CHALLENGE_INDICATORS.items():
        try:
            if await page.query_selector(selector):
                matched = name
                break
        except Exception as e:
            logger.debug(f"Challenge selector {name} failed: {e}")

    html = ""
    if matched is None:
        try:
            html = await page.content()
        except Exception as e:
            logger.debug(f"Could not read page content for challenge check: {e}")

    return detect_challenge_in(page.url, html, matched)


def is_captcha(challenge: Optional[str]) -> bool:
    return bool(challenge) and "captcha" in challenge


@dataclass
class ChallengeOutcome:
    """Result of a challenge check on the current page."""
    detected: bool = False
    kind: Optional[str] = None
    captcha: bool = False
    resolved: bool = True


class ChallengeHandler:
    """
    Cooldown-and-reload recovery for challenge pages.

    Works against any page reader exposing ``detect_challenge()`` and
    ``reload()`` coroutines.
    """

    def __init__(
        self,
        cooldown_seconds: float = CHALLENGE_COOLDOWN_SECONDS,
        max_reloads: int = 1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.max_reloads = max_reloads
        self._sleep = sleep
        self.challenges_seen = 0

    async def check_and_recover(self, reader: Any) -> ChallengeOutcome:
        kind = await reader.detect_challenge()
        if kind is None:
            return ChallengeOutcome()

        self.challenges_seen += 1
        outcome = ChallengeOutcome(detected=True, kind=kind, captcha=is_captcha(kind), resolved=False)

        for attempt in range(1, self.max_reloads + 1):
            logger.warning(
                f"Challenge detected ({kind}), cooling down {self.cooldown_seconds:.0f}s "
                f"before reload {attempt}/{self.max_reloads}"
            )
            await self._sleep(self.cooldown_seconds)
            try:
                await reader.reload()
            except Exception as e:
                logger.warning(f"Reload after challenge failed: {e}")
                continue
            if await reader.detect_challenge() is None:
                outcome.resolved = True
                logger.info("Challenge cleared after reload")
                break

        return outcome
