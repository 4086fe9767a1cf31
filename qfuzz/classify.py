"""Decide which responses are worth reporting."""

from dataclasses import dataclass
from typing import Iterable, Tuple

import requests
from bs4 import BeautifulSoup

from qfuzz.config import INTERESTING_STATUSES, Config, Rules


@dataclass(frozen=True)
class Result:
    url: str
    status_code: int
    status_text: str
    content_size: int
    matched: bool = False

    @property
    def status(self) -> str:
        """e.g. ``"200 OK"``"""
        return f"{self.status_code} {self.status_text}".rstrip()


# ═══════════════════════════════════════════════════════════════
#  Body inspection
# ═══════════════════════════════════════════════════════════════

def extract_text_and_title(body: bytes) -> Tuple[str, str]:
    """All text content of an HTML document, and its <title>."""
    soup = BeautifulSoup(body, "html.parser")
    title = soup.title.get_text() if soup.title else ""
    return soup.get_text(), title


def contains_any(haystack: str, needles: Iterable[str]) -> bool:
    hay = haystack.lower()
    return any(n.lower() in hay for n in needles)


def body_matches(body: bytes, needles: Iterable[str]) -> bool:
    needles = tuple(needles)
    if not needles or not body:
        return False
    text, title = extract_text_and_title(body)
    return contains_any(text, needles) or contains_any(title, needles)


def content_size(response: requests.Response) -> int:
    """Declared Content-Length, or the length of the body actually read.

    A compressed response declares its encoded length, so the decoded body
    is measured instead.
    """
    declared = response.headers.get("Content-Length")
    encoding = response.headers.get("Content-Encoding", "identity").strip().lower()
    if declared is not None and encoding in ("", "identity"):
        try:
            n = int(declared)
            if n >= 0:
                return n
        except ValueError:
            pass
    return len(response.content or b"")


def build_result(url: str, response: requests.Response, cfg: Config) -> Result:
    matched = False
    if cfg.needs_body_match:
        needles = cfg.match.strings or cfg.filter.strings
        matched = body_matches(response.content or b"", needles)
    return Result(
        url=url,
        status_code=response.status_code,
        status_text=response.reason or "",
        content_size=content_size(response),
        matched=matched,
    )


# ═══════════════════════════════════════════════════════════════
#  Decision
# ═══════════════════════════════════════════════════════════════

def _status_hit(rules: Rules, result: Result) -> bool:
    return rules.all_statuses or result.status_code in rules.statuses


def _size_hit(rules: Rules, result: Result) -> bool:
    return result.content_size in rules.sizes


def _string_hit(rules: Rules, result: Result) -> bool:
    return result.matched


# (is the category configured?, does the result hit it?)
_CATEGORIES = (
    (lambda r: r.has_status, _status_hit),
    (lambda r: r.has_size, _size_hit),
    (lambda r: r.has_strings, _string_hit),
)


def _configured_hits(rules: Rules, result: Result):
    return [hit(rules, result) for configured, hit in _CATEGORIES if configured(rules)]


def is_match(result: Result, rules: Rules) -> bool:
    """Every configured match category must hit; explicit status codes
    replace the built-in interesting set."""
    if not rules.has_status and result.status_code not in INTERESTING_STATUSES:
        return False
    return all(_configured_hits(rules, result))


def is_filtered(result: Result, rules: Rules) -> bool:
    """True if any configured filter category hits."""
    return any(_configured_hits(rules, result))


def decide(result: Result, cfg: Config) -> bool:
    """Should *result* be reported? Pure function of its arguments."""
    if cfg.filter_mode:
        if result.status_code not in INTERESTING_STATUSES:
            return False
        return not is_filtered(result, cfg.filter)
    return is_match(result, cfg.match)
