"""Command-line entry point."""

import argparse
import logging
import signal
import sys
import threading
import time

from tqdm import tqdm

from qfuzz import __version__, console
from qfuzz.client import make_session
from qfuzz.config import (DEFAULT_CONCURRENCY, DEFAULT_RETRIES, DEFAULT_TIMEOUT,
                          Config, build_config)
from qfuzz.dispatch import Dispatcher, iter_jobs, iter_probe_jobs
from qfuzz.engine import Engine
from qfuzz.errors import ConfigError, OutputWriteError
from qfuzz.sink import ResultSink
from qfuzz.wordlist import count_lines, iter_lines, load_targets

log = logging.getLogger(__name__)

STOP_EVENT = threading.Event()
SIGINT_COUNT = 0  # for double-press hard exit


def _install_signal_handlers():
    def _handler(signum, frame):
        global SIGINT_COUNT
        SIGINT_COUNT += 1
        STOP_EVENT.set()
        if SIGINT_COUNT == 1:
            log.warning("Interrupt received, stopping new work (press Ctrl+C again to force quit).")
        else:
            raise KeyboardInterrupt
    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="qfuzz",
        description=f"qfuzz {__version__}: fast content-discovery fuzzer with match/filter rules.",
    )

    g = p.add_argument_group("input")
    g.add_argument("-w", "--wordlist", help="Wordlist file path (optionally .gz)")
    g.add_argument("-l", "--list", help="Target URL file path, one URL per line")
    g.add_argument("-u", dest="urls", action="append",
                   help="Target URL(s), e.g. -u https://example.com,https://example.org")

    g = p.add_argument_group("output")
    g.add_argument("-o", "--output", help="Write reported URLs to this file (truncated at start)")

    g = p.add_argument_group("matchers")
    g.add_argument("-mc", dest="match_status", action="append",
                   help="Match HTTP status code(s) or 'all' (default 200-299,301,302,307,401,403,405,500)")
    g.add_argument("-ms", dest="match_strings", action="append",
                   help="Match response text/title containing string(s), e.g. -ms admin,login")
    g.add_argument("-ml", dest="match_size", action="append", help="Match response content size(s)")

    g = p.add_argument_group("filters")
    g.add_argument("-fc", dest="filter_status", action="append", help="Filter HTTP status code(s), e.g. -fc 500,202")
    g.add_argument("-fs", dest="filter_strings", action="append",
                   help="Filter response text/title containing string(s)")
    g.add_argument("-fl", dest="filter_size", action="append", help="Filter response content size(s), e.g. -fl 4343,433")

    g = p.add_argument_group("configurations")
    g.add_argument("-X", dest="method", default="GET", help="HTTP method, e.g. GET, POST, PUT, DELETE")
    g.add_argument("-d", "--data", help="Request body (may contain FUZZ)")
    g.add_argument("-H", dest="headers", action="append",
                   help="Header(s) 'Name: value' (comma-separated or repeated; may contain FUZZ)")
    g.add_argument("-fr", "--follow-redirects", action="store_true", help="Follow redirects")
    g.add_argument("-webcache", action="store_true",
                   help="Detect web caching, saving cache-enabled URLs to discoveredWebCache.txt")
    g.add_argument("-ra", "--random-agent", action="store_true", help="Use a random User-Agent per request")
    g.add_argument("-retries", type=int, default=DEFAULT_RETRIES,
                   help=f"Number of retries if status code is 429 (default {DEFAULT_RETRIES})")

    g = p.add_argument_group("optimizations")
    g.add_argument("-c", dest="concurrency", type=int, default=DEFAULT_CONCURRENCY,
                   help=f"Number of concurrent requests (default {DEFAULT_CONCURRENCY})")
    g.add_argument("-to", "--timeout", type=float, default=DEFAULT_TIMEOUT,
                   help=f"Timeout in seconds (default {DEFAULT_TIMEOUT:g})")

    g = p.add_argument_group("debug")
    g.add_argument("-v", "--verbose", action="store_true", help="Also show responses that were not reported")
    g.add_argument("-silent", action="store_true", help="Only print reported URLs")
    g.add_argument("-debug", action="store_true", help="Log per-request errors")
    return p


def print_summary(cfg: Config, n_targets: int, n_words: int) -> None:
    log.info("qfuzz %s", __version__)
    log.info("─" * 64)
    log.info("  Method    : %s   Threads: %d   Timeout: %gs   Retries(429): %d",
             cfg.method, cfg.concurrency, cfg.timeout, cfg.retries)
    log.info("  Redirects : %s", "follow" if cfg.follow_redirects else "show")
    log.info("  TLS verify: OFF (insecure)")
    if cfg.cache_probe_mode:
        log.info("  Targets   : %d (web cache probe only)", n_targets)
    else:
        log.info("  Targets   : %d   Words: %d   Jobs: %d", n_targets, n_words, n_targets * n_words)
    if cfg.filter_mode:
        log.info("  Filter    : %s", cfg.filter.describe())
    elif cfg.match:
        log.info("  Match     : %s", cfg.match.describe())
    else:
        log.info("  Match     : status [200-299,301,302,307,401,403,405,500]")
    if cfg.web_cache:
        log.info("  Web cache : detecting -> %s", cfg.cache_file)
    if cfg.output_file:
        log.info("  Output    : %s", cfg.output_file)
    log.info("─" * 64)


def run(cfg: Config, *, stop_event: threading.Event = STOP_EVENT) -> Engine:
    """Execute a whole run for *cfg* and return the engine with its counters."""
    targets = load_targets(cfg.url_file, cfg.urls)
    if not targets:
        raise ConfigError("No targets to scan.")

    if cfg.cache_probe_mode:
        n_words = 0
        total = len(targets)
        jobs = iter_probe_jobs(targets)
    else:
        n_words = count_lines(cfg.wordlist_file)
        if n_words == 0:
            raise ConfigError("The wordlist is empty.")
        total = n_words * len(targets)
        jobs = iter_jobs(iter_lines(cfg.wordlist_file), targets)

    print_summary(cfg, len(targets), n_words)

    pbar = tqdm(total=total, desc="Processing", unit="req",
                disable=cfg.silent or not sys.stderr.isatty())
    start = time.monotonic()
    try:
        with make_session(cfg) as session, ResultSink(cfg.output_file, cache_file=cfg.cache_file,
                                                      silent=cfg.silent) as sink:
            engine = Engine(cfg, session, sink, stop_event=stop_event)
            dispatcher = Dispatcher(cfg.concurrency, stop_event=stop_event,
                                    on_done=lambda _job: pbar.update(1))
            dispatcher.run(jobs, engine.handler())
    finally:
        pbar.close()

    elapsed = time.monotonic() - start
    done = sum(engine.status_counter.values())
    rps = done / elapsed if elapsed > 0 else 0
    log.info("Done in %s (%d/%d jobs, ~%.0f req/s), reported: %d%s",
             console.fmt_elapsed(elapsed), dispatcher.dispatched, total, rps, sink.reported,
             f", cache-enabled: {sink.cached}" if cfg.web_cache else "")
    return engine


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    console.enable_color(sys.stdout.isatty() and sys.stderr.isatty())
    console.setup_logging(debug=args.debug, silent=args.silent)

    try:
        cfg = build_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _install_signal_handlers()
    try:
        run(cfg)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OutputWriteError as e:
        log.critical("%s", e)
        return 1
    if STOP_EVENT.is_set():
        return 130
    return 0


def entrypoint():
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        STOP_EVENT.set()
        print("\nFuzzing interrupted by user.", file=sys.stderr)
        sys.exit(130)
