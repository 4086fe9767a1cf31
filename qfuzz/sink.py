"""Where reported results go: the terminal, the output file, the cache file."""

import logging
import threading
from typing import Mapping, Optional

from qfuzz import console
from qfuzz.classify import Result
from qfuzz.config import WEB_CACHE_FILE
from qfuzz.errors import OutputWriteError

log = logging.getLogger(__name__)

CACHE_HEADERS = ("X-Cache", "Cf-Cache-Status", "Cache-Control", "Vary", "Age", "Server-Timing")
# Only these carry an explicit hit/miss verdict.
CACHE_VERDICT_HEADERS = ("X-Cache", "Cf-Cache-Status")


def cache_headers(headers: Mapping[str, str]) -> dict:
    """The caching-related headers present on a response."""
    lowered = {k.lower(): v for k, v in headers.items()}
    return {h: lowered[h.lower()] for h in CACHE_HEADERS if h.lower() in lowered}


def detect_web_cache(headers: Mapping[str, str]) -> bool:
    """True if X-Cache or Cf-Cache-Status reports a hit or a miss."""
    found = cache_headers(headers)
    for name in CACHE_VERDICT_HEADERS:
        val = found.get(name, "").lower()
        if "hit" in val or "miss" in val:
            return True
    return False


class ResultSink:
    """Serializes every write to the result files behind one lock.

    The output file is created (truncated) when the sink is opened; the
    cache file only once the first cache-enabled URL shows up.
    """

    def __init__(self, output_file: Optional[str] = None, *, cache_file: str = WEB_CACHE_FILE,
                 silent: bool = False):
        self.output_file = output_file
        self.cache_file = cache_file
        self.silent = silent
        self.reported = 0
        self.cached = 0
        self._lock = threading.Lock()
        self._out = None
        self._cache = None

    def open(self) -> "ResultSink":
        if self.output_file:
            try:
                self._out = open(self.output_file, "w", encoding="utf-8")
            except OSError as e:
                raise OutputWriteError(f"Error creating output file {self.output_file}: {e}") from e
        return self

    def close(self) -> None:
        with self._lock:
            for fh in (self._out, self._cache):
                if fh is not None:
                    fh.close()
            self._out = None
            self._cache = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    @staticmethod
    def _write(fh, path: str, url: str) -> None:
        try:
            fh.write(f"{url}\n")
            fh.flush()
        except OSError as e:
            raise OutputWriteError(f"Error writing to {path}: {e}") from e

    def format_hit(self, result: Result) -> str:
        if self.silent:
            return result.url
        return (f" >> {console.color_status(result.status_code)}  {result.url}  "
                + console.cyan(f"[ContentSize: {result.content_size}, Status: {result.status}]"))

    def report(self, result: Result) -> None:
        """Print a reported result and persist its URL."""
        with self._lock:
            self.reported += 1
            console.emit(self.format_hit(result))
            if self._out is not None:
                self._write(self._out, self.output_file, result.url)

    def show_unmatched(self, result: Result) -> None:
        """Verbose-mode echo of a result that was not reported."""
        if self.silent:
            return
        console.emit(console.dim(
            f"    {console.color_status(result.status_code)}  {result.url}  {console.fmt_size(result.content_size)}"
        ))

    def record_cache(self, url: str) -> None:
        with self._lock:
            if self._cache is None:
                try:
                    self._cache = open(self.cache_file, "w", encoding="utf-8")
                except OSError as e:
                    raise OutputWriteError(f"Error opening web cache file {self.cache_file}: {e}") from e
            self.cached += 1
            self._write(self._cache, self.cache_file, url)
            if not self.silent:
                console.emit(f" >> {console.yellow('[cache]')}  {url}")
