"""
Device and Network Context
==========================
Client IP extraction and user-agent classification for fingerprinted
step-up purposes.
"""

import re
from dataclasses import dataclass
from typing import Mapping, Optional

from stepup_core.scope import MAX_IP_LENGTH, MAX_UA_LENGTH, FingerprintContext, sanitize


@dataclass(frozen=True)
class DeviceInfo:
    """Coarse description of the requesting client."""
    browser: str
    operating_system: str
    device_category: str  # "mobile", "laptop" or "desktop"
    is_chrome: bool
    is_microsoft_browser: bool
    user_agent: str

    @property
    def is_mobile(self) -> bool:
        return self.device_category == "mobile"


_OS_PATTERNS = (
    (re.compile(r"windows nt 10\.0", re.I), "Windows"),
    (re.compile(r"windows nt 6\.3", re.I), "Windows 8.1"),
    (re.compile(r"windows nt 6\.2", re.I), "Windows 8"),
    (re.compile(r"windows nt 6\.1", re.I), "Windows 7"),
    (re.compile(r"android", re.I), "Android"),
    (re.compile(r"iphone|ipad|ipod", re.I), "iOS"),
    (re.compile(r"macintosh|mac os x", re.I), "macOS"),
    (re.compile(r"cros", re.I), "Chrome OS"),
    (re.compile(r"linux", re.I), "Linux"),
)

_MOBILE = re.compile(r"mobile|iphone|ipod|android.*mobile|windows phone|blackberry|bb10", re.I)
_TABLET = re.compile(r"ipad|tablet", re.I)
_LAPTOP = re.compile(r"macintosh|mac os x|cros", re.I)


def _detect_browser(ua: str):
    is_edge = bool(re.search(r"edg(e|a|ios)?/", ua, re.I))
    is_ie = bool(re.search(r"msie|trident", ua, re.I))
    is_opera = bool(re.search(r"opr/|opera", ua, re.I))
    is_chrome = not is_edge and not is_opera and bool(re.search(r"chrome|crios", ua, re.I))
    is_firefox = bool(re.search(r"firefox|fxios", ua, re.I))
    is_safari = (
        not is_chrome
        and bool(re.search(r"safari", ua, re.I))
        and bool(re.search(r"version/", ua, re.I))
    )

    if is_edge:
        return "Microsoft Edge", False, True
    if is_ie:
        return "Internet Explorer", False, True
    if is_chrome:
        return "Google Chrome", True, False
    if is_firefox:
        return "Mozilla Firefox", False, False
    if is_safari:
        return "Apple Safari", False, False
    if is_opera:
        return "Opera", False, False
    return "Unknown", False, False


def _detect_os(ua: str) -> str:
    for pattern, name in _OS_PATTERNS:
        if pattern.search(ua):
            return name
    return "Unknown"


def _detect_category(ua: str) -> str:
    if _MOBILE.search(ua) or _TABLET.search(ua):
        return "mobile"
    if _LAPTOP.search(ua):
        return "laptop"
    return "desktop"


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """Classify a User-Agent header; unknown input yields "Unknown" fields."""
    raw = (user_agent or "")[:MAX_UA_LENGTH] if isinstance(user_agent, str) else ""
    browser, is_chrome, is_microsoft = _detect_browser(raw)

    return DeviceInfo(
        browser=sanitize(browser, "Unknown", 120),
        operating_system=sanitize(_detect_os(raw), "Unknown", 120),
        device_category=_detect_category(raw),
        is_chrome=is_chrome,
        is_microsoft_browser=is_microsoft,
        user_agent=raw,
    )


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


def client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """
    Resolve the client IP address.

    Order: first X-Forwarded-For hop, X-Real-IP, then the socket peer.

    Args:
        headers: Request headers
        peer: Socket peer address

    Returns:
        Cleaned IP string, "unknown" when nothing usable is present
    """
    forwarded = _header(headers, "X-Forwarded-For")
    real_ip = _header(headers, "X-Real-IP")

    candidate = ""
    if forwarded:
        candidate = forwarded.split(",")[0]
    if not candidate.strip() and real_ip:
        candidate = real_ip
    if not candidate.strip() and peer:
        candidate = peer

    cleaned = candidate.strip()
    if cleaned.startswith("::ffff:"):
        cleaned = cleaned[len("::ffff:"):]
    return cleaned[:MAX_IP_LENGTH] or "unknown"


def context_from_headers(headers: Mapping[str, str], peer: Optional[str] = None) -> FingerprintContext:
    """Build a fingerprint context from request headers."""
    return FingerprintContext(
        ip_address=client_ip(headers, peer),
        user_agent=_header(headers, "User-Agent") or "",
    )
