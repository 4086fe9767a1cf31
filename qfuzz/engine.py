"""Per-job work: build the request, send it, classify, report."""

import logging
import threading
from collections import Counter
from typing import Callable, Dict, Optional

import requests

from qfuzz.classify import Result, build_result, decide
from qfuzz.client import RequestPool, prepare
from qfuzz.config import Config
from qfuzz.dispatch import Job
from qfuzz.errors import InvalidURLError, JobCancelled, RateLimitExhausted
from qfuzz.retry import send_with_retry
from qfuzz.sink import ResultSink, detect_web_cache
from qfuzz.substitute import build_request_parts, normalize_url, parse_headers

log = logging.getLogger(__name__)

# Warn when errors exceed this fraction at these completion counts.
_ERROR_WARN_FRACTION = 0.30
_ERROR_CHECK_AT = frozenset({100, 500, 2000})

# Unread bodies up to this size are drained so the connection is reused.
_DRAIN_MAX_BYTES = 262_144  # 256 KB


def _drain_and_close(response: requests.Response, max_bytes: int = _DRAIN_MAX_BYTES) -> None:
    """Read out a small body so the keep-alive connection goes back to the
    pool instead of being discarded; larger bodies just close it."""
    try:
        declared = response.headers.get("Content-Length", "")
        if not declared.isdigit() or int(declared) <= max_bytes:
            drained = 0
            for chunk in response.iter_content(chunk_size=16384):
                drained += len(chunk)
                if drained > max_bytes:
                    break
    except requests.RequestException as e:
        log.debug("Error draining %s: %s", response.url, e)
    finally:
        response.close()


class Engine:
    """Job handlers for the dispatcher: :meth:`fuzz` and :meth:`probe_cache`."""

    def __init__(self, cfg: Config, session: requests.Session, sink: ResultSink, *,
                 stop_event: Optional[threading.Event] = None,
                 wait: Optional[Callable[[float], bool]] = None):
        self.cfg = cfg
        self.session = session
        self.sink = sink
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.pool = RequestPool()
        self.status_counter: Counter = Counter()
        self.errors = 0
        self._wait = wait
        self._stats_lock = threading.Lock()
        self._error_warned = False

    # ── bookkeeping ───────────────────────────────────────────────

    def _note(self, status) -> None:
        with self._stats_lock:
            self.status_counter[status] += 1
            if status == "error":
                self.errors += 1
            total = sum(self.status_counter.values())
            if (not self._error_warned
                    and total in _ERROR_CHECK_AT
                    and self.errors / total > _ERROR_WARN_FRACTION):
                self._error_warned = True
                log.warning("High error rate: %d/%d (%.0f%%), check target, network, or reduce -c",
                            self.errors, total, self.errors / total * 100)

    # ── transport ─────────────────────────────────────────────────

    def _fetch(self, url: str, body: str, headers: Dict[str, str]) -> Optional[requests.Response]:
        if self.stop_event.is_set():
            return None

        cfg = self.cfg
        try:
            with self.pool.acquire() as req:
                prepared = prepare(self.session, req, cfg=cfg, url=url, body=body, headers=headers)
        except (requests.exceptions.InvalidURL, requests.exceptions.InvalidHeader) as e:
            log.error("Invalid request for %s: %s", url, e)
            return None

        def send() -> requests.Response:
            return self.session.send(
                prepared,
                allow_redirects=cfg.follow_redirects,
                timeout=(cfg.timeout, cfg.timeout),
                stream=True,
            )

        try:
            return send_with_retry(send, url=url, method=cfg.method, retries=cfg.retries,
                                   stop_event=self.stop_event, wait=self._wait)
        except JobCancelled:
            return None
        except RateLimitExhausted as e:
            self._note("error")
            log.debug("Error %s: %s", url, e)
        except requests.RequestException as e:
            self._note("error")
            log.debug("Error %s: %s: %s", url, type(e).__name__, e)
        return None

    # ── handlers ──────────────────────────────────────────────────

    def fuzz(self, job: Job) -> Optional[Result]:
        """Request one (target, word) pair and report it if it qualifies."""
        cfg = self.cfg
        try:
            url, body, headers = build_request_parts(job.base_url, job.word, cfg.post_data, cfg.headers)
        except InvalidURLError as e:
            log.error("%s", e)
            return None

        response = self._fetch(url, body, headers)
        if response is None:
            return None
        try:
            if cfg.web_cache and detect_web_cache(response.headers):
                self.sink.record_cache(url)
            result = build_result(url, response, cfg)
        except requests.RequestException as e:
            self._note("error")
            log.debug("Error reading %s: %s", url, e)
            return None
        finally:
            _drain_and_close(response)

        self._note(result.status_code)
        if decide(result, cfg):
            self.sink.report(result)
        elif cfg.verbose:
            self.sink.show_unmatched(result)
        return result

    def probe_cache(self, job: Job) -> bool:
        """One request per target, looking only at caching headers."""
        cfg = self.cfg
        try:
            url = normalize_url(job.base_url)
        except InvalidURLError as e:
            log.error("%s", e)
            return False

        response = self._fetch(url, cfg.post_data, parse_headers(cfg.headers))
        if response is None:
            return False
        try:
            self._note(response.status_code)
            found = detect_web_cache(response.headers)
        finally:
            _drain_and_close(response)

        if found:
            self.sink.record_cache(url)
        else:
            log.debug("No cache verdict from %s", url)
        return found

    def handler(self) -> Callable[[Job], object]:
        return self.probe_cache if self.cfg.cache_probe_mode else self.fuzz
