"""Automated-traffic detection for ingestion requests.

Pure functions over request headers; no network or I/O.
"""

# Matched as case-insensitive substrings of the User-Agent header.
BOT_PATTERNS: tuple[str, ...] = (
    # Search engines
    "googlebot", "bingbot", "slurp", "duckduckbot", "baiduspider", "yandexbot",
    "sogou", "exabot", "facebot", "ia_archiver",
    # SEO and monitoring
    "ahrefsbot", "semrushbot", "dotbot", "applebot", "mj12bot", "rogerbot",
    "linkpadbot", "pingdombot", "dataforseobot", "seznambot",
    # Social previews
    "twitterbot", "facebookexternalhit", "linkedinbot", "discordbot", "telegrambot",
    "whatsapp", "skypeuripreview", "slackbot",
    # Uptime monitors
    "uptimerobot", "statuscake", "pingdom", "gtmetrix", "site24x7",
    # Scrapers and HTTP libraries
    "scrapy", "curl", "wget", "python-requests", "python-urllib", "go-http-client",
    "apache-httpclient", "okhttp", "axios", "node-fetch",
    # Headless browsers
    "headlesschrome", "phantomjs", "selenium", "playwright", "puppeteer",
    # Generic
    "bot", "crawler", "spider", "scraper", "monitor",
    # Prerender services
    "prerender", "rendertron",
)

_COMPATIBLE_PREFIX = "mozilla/5.0 (compatible;"
_BROWSER_ENGINE_TOKENS = ("chrome", "firefox", "safari")


def is_bot(user_agent: str | None) -> bool:
    """Check whether a User-Agent looks like automated traffic.

    An empty User-Agent is not treated as a bot. A "Mozilla/5.0 (compatible; ...)"
    agent that names none of the major browser engines is treated as a bot
    impersonating a browser.

    Args:
        user_agent: Raw User-Agent header value.

    Returns:
        True if the request should be ignored.
    """
    if not user_agent:
        return False

    ua = user_agent.lower()

    if any(pattern in ua for pattern in BOT_PATTERNS):
        return True

    if ua.startswith(_COMPATIBLE_PREFIX) and not any(
        token in ua for token in _BROWSER_ENGINE_TOKENS
    ):
        return True

    return False


def is_prefetch_request(purpose: str | None) -> bool:
    """Check a Purpose / Sec-Purpose header for speculative loads."""
    if not purpose:
        return False
    purpose = purpose.lower()
    return "prefetch" in purpose or "prerender" in purpose
