# notedigest/core/utils/url.py
"""URL helpers for safe logging of store connection strings."""

from __future__ import annotations

from urllib.parse import urlparse, urlunparse


def mask_database_url(url: str) -> str:
    """Mask the password in a database URL so it can be logged.

    Falls back to string splitting if the URL cannot be parsed.
    """
    try:
        parsed = urlparse(url)
        if not parsed.password:
            return url
        netloc = parsed.netloc.replace(f':{parsed.password}@', ':***@')
        return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        if '@' not in url:
            return url
        pre, post = url.split('@', 1)
        scheme_user = pre.rsplit(':', 1)[0]
        return f'{scheme_user}:***@{post}'
