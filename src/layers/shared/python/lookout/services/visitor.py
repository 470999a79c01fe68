"""Anonymous visitor identity and client classification."""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlparse

OTHER = "Other"


def visitor_fingerprint(
    client_ip: str,
    user_agent: str,
    salt: str,
    day: datetime | None = None,
) -> str:
    """Derive an anonymous visitor ID.

    HMAC-SHA256 keyed by the site salt over IP and User-Agent, so the ID
    cannot be reversed or recomputed without the salt. Passing ``day`` mixes
    in the UTC calendar date and makes IDs rotate daily.

    Args:
        client_ip: Client IP address.
        user_agent: Raw User-Agent header.
        salt: Per-site secret.
        day: Time whose UTC date is mixed in, or None for no rotation.

    Returns:
        32 hex characters.
    """
    parts = [client_ip or "", user_agent or ""]
    if day is not None:
        if day.tzinfo is None:
            day = day.replace(tzinfo=timezone.utc)
        parts.append(day.astimezone(timezone.utc).strftime("%Y-%m-%d"))

    message = "|".join(parts).encode("utf-8")
    digest = hmac.new(salt.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return digest[:32]


@dataclass(frozen=True)
class ClientInfo:
    """Coarse classification of the visiting client."""

    device: str
    browser: str
    os: str


def parse_user_agent(user_agent: str | None) -> ClientInfo:
    """Classify device, browser and OS from a User-Agent (coarse on purpose)."""
    ua = (user_agent or "").lower()

    # browser; order matters since most engines also claim "safari"/"chrome"
    if "edg/" in ua or "edge/" in ua:
        browser = "Edge"
    elif "opr/" in ua or "opera" in ua:
        browser = "Opera"
    elif "samsungbrowser" in ua:
        browser = "Samsung Internet"
    elif "firefox" in ua or "fxios" in ua:
        browser = "Firefox"
    elif "chromium" in ua:
        browser = "Chromium"
    elif "chrome" in ua or "crios" in ua:
        browser = "Chrome"
    elif "safari" in ua:
        browser = "Safari"
    else:
        browser = OTHER

    # OS
    if "windows" in ua:
        os_name = "Windows"
    elif "iphone" in ua or "ipad" in ua or "ipod" in ua:
        os_name = "iOS"
    elif "android" in ua:
        os_name = "Android"
    elif "cros" in ua:
        os_name = "ChromeOS"
    elif "mac os x" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "linux" in ua:
        os_name = "Linux"
    else:
        os_name = OTHER

    return ClientInfo(device=categorize_device(ua), browser=browser, os=os_name)


def categorize_device(user_agent: str | None) -> str:
    """Classify a User-Agent as "mobile", "tablet" or "desktop"."""
    ua = (user_agent or "").lower()
    if "ipad" in ua or "tablet" in ua:
        return "tablet"
    # Android tablets omit the "mobile" token
    if "android" in ua and "mobile" not in ua:
        return "tablet"
    if "iphone" in ua or "ipod" in ua or "mobile" in ua:
        return "mobile"
    return "desktop"


def categorize_screen_size(width: int | None) -> str:
    """Bucket a viewport width into xs/sm/md/lg/xl."""
    width = width or 0
    if width < 576:
        return "xs"
    if width < 768:
        return "sm"
    if width < 992:
        return "md"
    if width < 1200:
        return "lg"
    return "xl"


def host_from_header(raw: str | None) -> str:
    """Extract a lowercased hostname from an Origin or Referer value."""
    if not raw:
        return ""
    try:
        host = urlparse(raw).hostname
    except ValueError:
        return ""
    return (host or "").strip().lower().rstrip(".")


def is_allowed_domain(origin: str | None, referer: str | None, domains: list[str]) -> bool:
    """Check the request's origin against a site's domain allowlist.

    The Origin header is preferred; Referer is used when Origin is absent.
    An empty allowlist accepts every origin.
    """
    if not domains:
        return True
    host = host_from_header(origin) or host_from_header(referer)
    if not host:
        return False
    return host in domains


def normalize_referrer(raw: str | None) -> str:
    """Keep only the hostname of a referrer URL ("" means direct traffic)."""
    if not raw:
        return ""
    host = host_from_header(raw)
    if host:
        return host
    # Bare hostnames ("news.ycombinator.com") have no scheme to parse
    return raw.strip().lower().split("/", 1)[0]
