# core/proxy/browser_headers.py
"""
Browser-like request headers for the upstream fetch.

Many sites answer 403 to requests that do not look like a real browser
navigation, so every upstream request carries the same desktop Chrome identity.
"""

from typing import Dict
from urllib.parse import urlsplit

CHROME_UA = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)


def get_browser_like_headers(target_url: str) -> Dict[str, str]:
    """
    Build the browser identity headers for a target.

    Accept-Encoding is forced to identity: the proxy strips Content-Encoding
    and recomputes lengths, so it must not ask for compressed bodies.

    Args:
        target_url: Absolute http(s) URL being fetched

    Returns:
        dict: Header name -> value, including Host, Origin and Referer
    """
    parts = urlsplit(target_url)
    host = parts.netloc.rsplit('@', 1)[-1]
    origin = f"{parts.scheme}://{host}"

    return {
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,'
                  'image/avif,image/webp,image/apng,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
        'Accept-Encoding': 'identity',
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
        'Sec-Ch-Ua': '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
        'Sec-Ch-Ua-Mobile': '?0',
        'Sec-Ch-Ua-Platform': '"Windows"',
        'Sec-Fetch-Dest': 'document',
        'Sec-Fetch-Mode': 'navigate',
        'Sec-Fetch-Site': 'none',
        'Sec-Fetch-User': '?1',
        'Upgrade-Insecure-Requests': '1',
        'User-Agent': CHROME_UA,
        'Host': host,
        'Origin': origin,
        'Referer': f"{origin}/",
    }
