from typing import Tuple
from urllib.parse import urlparse, urlunparse

ALLOWED_SCHEMES = ("http", "https")


def normalize_page_url(url: str) -> str:
    """
    Canonical form used to de-duplicate sitemap entries: surrounding
    whitespace and the #fragment are dropped, the host is lower-cased.
    """
    parsed = urlparse(url.strip())
    return urlunparse(parsed._replace(netloc=parsed.netloc.lower(), fragment=""))


def validate_url(url: str) -> Tuple[bool, str, str]:
    """Return (is_valid, normalized_url, error_message) for an absolute http(s) URL."""
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    try:
        normalized_url = normalize_page_url(url)
        parsed = urlparse(normalized_url)
    except ValueError as e:
        return False, url.strip(), f"URL parsing error: {e}"

    if parsed.scheme not in ALLOWED_SCHEMES:
        return False, normalized_url, f"Invalid URL scheme: {parsed.scheme or 'none'} (must be http or https)"

    if not parsed.netloc:
        return False, normalized_url, "Invalid URL format: missing domain"

    return True, normalized_url, ""
