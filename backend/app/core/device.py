"""User-agent parsing and token transport selection."""

import re
from dataclasses import dataclass
from enum import Enum

from user_agents import parse as parse_ua

# ua-parser has no smart-TV device class, so TVs are recognised by UA tokens
_SMART_TV_PATTERN = re.compile(
    r"smart-?tv|hbbtv|googletv|appletv|crkey|roku|bravia|netcast|viera|web0s|tizen.*tv|\btv\b",
    re.IGNORECASE,
)
_UNKNOWN = "Other"
MOBILE_LIKE_TYPES = frozenset({"mobile", "tablet", "smarttv"})


class Transport(str, Enum):
    """How tokens travel back to the client."""

    HEADER = "header"  # response headers + body, for mobile-like clients
    COOKIE = "cookie"  # httpOnly cookies, for browsers


@dataclass(frozen=True)
class DeviceFacts:
    user_agent: str
    device_type: str | None
    device_name: str | None
    browser: str | None
    os: str | None

    @property
    def is_mobile_like(self) -> bool:
        return self.device_type in MOBILE_LIKE_TYPES


def _known(value: str | None) -> str | None:
    if not value or value == _UNKNOWN:
        return None
    return value


def parse_user_agent(user_agent: str | None) -> DeviceFacts:
    """Parse a raw user-agent string into device facts. Pure function."""
    raw = user_agent or ""
    parsed = parse_ua(raw)

    if _SMART_TV_PATTERN.search(raw):
        device_type = "smarttv"
    elif parsed.is_tablet:
        device_type = "tablet"
    elif parsed.is_mobile:
        device_type = "mobile"
    elif parsed.is_bot:
        device_type = "bot"
    elif parsed.is_pc:
        device_type = "desktop"
    else:
        device_type = None

    return DeviceFacts(
        user_agent=raw,
        device_type=device_type,
        device_name=_known(parsed.device.model) or _known(parsed.device.family),
        browser=_known(parsed.browser.family),
        os=_known(parsed.os.family),
    )


def is_mobile_like(user_agent: str | None) -> bool:
    return parse_user_agent(user_agent).is_mobile_like


def transport_for(device: DeviceFacts) -> Transport:
    return Transport.HEADER if device.is_mobile_like else Transport.COOKIE
