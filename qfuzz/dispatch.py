"""Bounded-concurrency execution of independent jobs."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Sequence

from qfuzz.errors import OutputWriteError

log = logging.getLogger(__name__)

# How often a producer blocked on a full pool re-checks for cancellation.
_ACQUIRE_POLL = 0.25


@dataclass(frozen=True)
class Job:
    base_url: str
    word: str = ""


def iter_jobs(words: Iterable[str], urls: Sequence[str]) -> Iterator[Job]:
    """Every (target, word) pair, word-major."""
    for word in words:
        for url in urls:
            yield Job(url, word)


def iter_probe_jobs(urls: Iterable[str]) -> Iterator[Job]:
    for url in urls:
        yield Job(url)


class Dispatcher:
    """Run jobs with at most ``concurrency`` of them in flight.

    A semaphore slot is taken before a job is submitted, so the producer
    blocks instead of queueing unbounded work. The slot is given back in a
    ``finally`` whatever the job did. Setting ``stop_event`` stops new
    submissions; jobs already admitted drain before ``run`` returns.
    """

    def __init__(self, concurrency: int, *,
                 stop_event: Optional[threading.Event] = None,
                 on_done: Optional[Callable[[Job], None]] = None):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.dispatched = 0
        self.in_flight = 0
        self.peak_in_flight = 0
        self.fatal: Optional[BaseException] = None
        self._on_done = on_done
        self._slots = threading.BoundedSemaphore(concurrency)
        self._lock = threading.Lock()

    def _acquire_slot(self) -> bool:
        while not self.stop_event.is_set():
            if self._slots.acquire(timeout=_ACQUIRE_POLL):
                if self.stop_event.is_set():
                    self._slots.release()
                    return False
                return True
        return False

    def _run_one(self, handler: Callable[[Job], object], job: Job) -> None:
        with self._lock:
            self.in_flight += 1
            if self.in_flight > self.peak_in_flight:
                self.peak_in_flight = self.in_flight
        try:
            if self.stop_event.is_set():
                return
            handler(job)
        except OutputWriteError as e:
            with self._lock:
                if self.fatal is None:
                    self.fatal = e
            self.stop_event.set()
        except Exception:
            log.exception("Unexpected error while processing %s %r", job.base_url, job.word)
        finally:
            with self._lock:
                self.in_flight -= 1
                if self._on_done is not None:
                    self._on_done(job)
            self._slots.release()

    def run(self, jobs: Iterable[Job], handler: Callable[[Job], object]) -> int:
        """Dispatch *jobs* to *handler*; returns how many were dispatched.

        Re-raises a fatal OutputWriteError once in-flight jobs have drained.
        """
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="qfuzz") as executor:
            for job in jobs:
                if not self._acquire_slot():
                    break
                self.dispatched += 1
                executor.submit(self._run_one, handler, job)
        if self.fatal is not None:
            raise self.fatal
        return self.dispatched
