"""
Stream URL helpers

Cleans catalog URLs before they reach the player and builds the relay URL used
by the proxied connection stage.
"""

import time
from urllib.parse import quote

INTERNET_RADIO_PROXY = 'internet-radio.com/proxy'


def sanitize_stream_url(url: str) -> str:
    """
    Normalize a station URL for direct playback

    internet-radio.com proxy links serve an HTML landing page unless asked for
    the raw stream with mp=/stream, so that suffix is added.
    """
    if not url:
        return url

    sanitized = url.strip()
    if INTERNET_RADIO_PROXY in sanitized:
        if '?mp=/stream' not in sanitized and '&mp=/stream' not in sanitized:
            # The old shoutcast ';' suffix is superseded by mp=/stream
            if sanitized.endswith(';'):
                sanitized = sanitized[:-1]
            separator = '&' if '?' in sanitized else '?'
            sanitized = f"{sanitized}{separator}mp=/stream"
    return sanitized


def is_relay_url(url: str, relay_url: str) -> bool:
    return bool(url) and url.startswith(relay_url)


def build_relay_url(url: str, relay_url: str = "/api/proxy", cache_bust: bool = True) -> str:
    """
    Route a stream through the same-origin relay

    Args:
        url: Origin stream URL
        relay_url: Relay endpoint accepting ?url=<encoded origin>
        cache_bust: Append a _t timestamp so stale failed responses are not reused

    Returns:
        Relay URL; URLs already pointing at the relay are returned unchanged
    """
    if not url or is_relay_url(url, relay_url):
        return url

    proxied = f"{relay_url}?url={quote(sanitize_stream_url(url), safe='')}"
    if cache_bust:
        proxied = f"{proxied}&_t={int(time.time() * 1000)}"
    return proxied
