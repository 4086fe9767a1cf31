"""Turn a (target, word) pair into a concrete request."""

from typing import Dict, Iterable, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from qfuzz.errors import InvalidURLError

FUZZ = "FUZZ"


def has_fuzz(text: Optional[str]) -> bool:
    return bool(text) and FUZZ in text


def headers_have_fuzz(headers: Iterable[str]) -> bool:
    return any(has_fuzz(h) for h in headers)


def normalize_url(base_url: str) -> str:
    """Parse *base_url*, defaulting the scheme to https.

    Raises InvalidURLError for anything that cannot be requested.
    """
    raw = (base_url or "").strip()
    if not raw:
        raise InvalidURLError(f"Invalid URL: {base_url!r}")
    try:
        parts = urlsplit(raw)
        if not parts.scheme or "://" not in raw:
            # "host/path" and "host:port/path" need a scheme to parse as a netloc.
            raw = "https://" + raw.lstrip("/")
            parts = urlsplit(raw)
        # .port raises ValueError on garbage like "host:abc"
        parts.port
    except ValueError as e:
        raise InvalidURLError(f"Invalid URL: {base_url!r} ({e})") from e

    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidURLError(f"Invalid URL: {base_url!r} (unsupported scheme {parts.scheme!r})")
    if not parts.hostname:
        raise InvalidURLError(f"Invalid URL: {base_url!r} (missing host)")
    if parts.hostname.startswith(("*", ".")):
        raise InvalidURLError(f"Invalid URL: {base_url!r} (not a concrete host)")
    return raw


def build_url(base_url: str, word: str, post_data: str = "", headers: Sequence[str] = ()) -> str:
    """Return the request URL for *word* against *base_url*.

    >>> build_url("https://x.com", "admin")
    'https://x.com/admin'
    >>> build_url("https://x.com/FUZZ", "admin")
    'https://x.com/admin'
    """
    url = normalize_url(base_url)
    word = word.lstrip("/")

    # The word goes into the body/headers instead; the URL is left alone.
    if has_fuzz(post_data) or headers_have_fuzz(headers):
        return url
    if FUZZ in url:
        return url.replace(FUZZ, word, 1)
    return f"{url.rstrip('/')}/{word}"


def substitute_body(post_data: str, word: str) -> str:
    return post_data.replace(FUZZ, word.lstrip("/"), 1) if post_data else post_data


def parse_headers(headers: Iterable[str], word: Optional[str] = None) -> Dict[str, str]:
    """Parse ``"Name: value"`` strings, optionally substituting *word* for FUZZ.

    Entries without a colon are ignored.
    """
    out: Dict[str, str] = {}
    if word is not None:
        word = word.lstrip("/")
    for item in headers:
        if word is not None:
            item = item.replace(FUZZ, word, 1)
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            continue
        out[name.strip()] = value.strip()
    return out


def build_request_parts(base_url: str, word: str, post_data: str, headers: Sequence[str]) -> Tuple[str, str, Dict[str, str]]:
    """URL, body and header dict for one job."""
    url = build_url(base_url, word, post_data, headers)
    return url, substitute_body(post_data, word), parse_headers(headers, word)
