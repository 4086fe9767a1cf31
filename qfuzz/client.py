"""Shared HTTP session and reusable request objects."""

import queue
import random
import warnings
from contextlib import contextmanager
from typing import Iterator

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import InsecureRequestWarning
from urllib3.util.retry import Retry

from qfuzz.config import Config

# Realistic default UA; many WAFs/servers reject bare or bot-like User-Agents,
# causing false-negative 403s.  Override with -H 'User-Agent: ...' if needed.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/125.0.0.0 Safari/537.36"
)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.1; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:115.0) Gecko/20100101 Firefox/115.0",
    "Mozilla/5.0 (X11; Fedora; Linux x86_64; rv:115.0) Gecko/20100101 Firefox/115.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_1) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.2210.91",
    "Mozilla/5.0 (Windows NT 6.1; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/87.0.4280.141 Safari/537.36",
    "Mozilla/5.0 (Windows NT 6.1; WOW64; Trident/7.0; rv:11.0) like Gecko",
    "Mozilla/5.0 (Linux; Android 4.2.2; Le Pan TC802A Build/JDQ39) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/45.0.2454.84 Safari/537.36",
)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def _make_adapter(cfg: Config) -> HTTPAdapter:
    # Transport failures are never retried; 429s are handled by qfuzz.retry.
    retries = Retry(total=0, read=False, redirect=False, raise_on_redirect=False)
    pool = max(cfg.max_connections, cfg.concurrency)
    return HTTPAdapter(
        pool_connections=pool,
        pool_maxsize=pool,
        pool_block=True,
        max_retries=retries,
    )


def make_session(cfg: Config) -> requests.Session:
    """One session for the whole run.

    TLS certificate verification is OFF on purpose: targets are arbitrary
    hosts under discovery, not trusted endpoints.
    """
    warnings.filterwarnings("ignore", category=InsecureRequestWarning)

    session = requests.Session()
    session.trust_env = False
    session.verify = False
    session.max_redirects = 10

    adapter = _make_adapter(cfg)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers["User-Agent"] = DEFAULT_USER_AGENT
    # Content-Length must count the same bytes the body reader sees.
    session.headers["Accept-Encoding"] = "identity"
    return session


class RequestPool:
    """Recycles ``requests.Request`` objects between jobs.

    Objects are wiped on release so a job never sees another job's URL,
    headers or body.
    """

    def __init__(self):
        self._free: "queue.SimpleQueue[requests.Request]" = queue.SimpleQueue()

    def _get(self) -> requests.Request:
        try:
            return self._free.get_nowait()
        except queue.Empty:
            return requests.Request()

    @staticmethod
    def _reset(req: requests.Request) -> None:
        req.method = None
        req.url = None
        req.headers = {}
        req.data = []
        req.params = {}

    def _put(self, req: requests.Request) -> None:
        self._reset(req)
        self._free.put(req)

    @contextmanager
    def acquire(self) -> Iterator[requests.Request]:
        req = self._get()
        try:
            yield req
        finally:
            self._put(req)


def prepare(session: requests.Session, req: requests.Request, *, cfg: Config, url: str,
            body: str, headers: dict) -> requests.PreparedRequest:
    """Fill a pooled request for one job and merge it with the session."""
    req.method = cfg.method
    req.url = url
    req.headers = dict(headers)

    lowered = {k.lower() for k in req.headers}
    if cfg.random_agent and "user-agent" not in lowered:
        req.headers["User-Agent"] = random_user_agent()
    if body:
        req.data = body.encode("utf-8")
        if "content-type" not in lowered:
            req.headers["Content-Type"] = FORM_CONTENT_TYPE

    return session.prepare_request(req)
