"""Run configuration: immutable settings resolved once at startup."""

import re
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

from qfuzz.errors import ConfigError

DEFAULT_CONCURRENCY = 40
DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRIES = 5
DEFAULT_MAX_CONNECTIONS = 500
DEFAULT_METHOD = "GET"

WEB_CACHE_FILE = "discoveredWebCache.txt"

# Built-in "interesting" status set used whenever no explicit status matcher
# replaces it.
INTERESTING_STATUSES: FrozenSet[int] = frozenset(
    set(range(200, 300)) | {301, 302, 307, 401, 403, 405, 500}
)


def _split_csv(values) -> list:
    """Flatten repeated and comma-separated flag values into a list of tokens."""
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    out = []
    for v in values:
        out.extend(p.strip() for p in v.split(",") if p.strip())
    return out


@dataclass(frozen=True)
class Rules:
    """One set of match or filter predicates.

    Each category (status, size, strings) is optional; an empty category does
    not take part in the decision.
    """
    statuses: FrozenSet[int] = frozenset()
    all_statuses: bool = False
    sizes: FrozenSet[int] = frozenset()
    strings: Tuple[str, ...] = ()

    @property
    def has_status(self) -> bool:
        return self.all_statuses or bool(self.statuses)

    @property
    def has_size(self) -> bool:
        return bool(self.sizes)

    @property
    def has_strings(self) -> bool:
        return bool(self.strings)

    def __bool__(self) -> bool:
        return self.has_status or self.has_size or self.has_strings

    @classmethod
    def parse(cls, *, status=None, size=None, strings=None, flag: str = "") -> "Rules":
        """Build rules from raw flag values, e.g. ``parse(status="200,403")``."""
        statuses = set()
        all_statuses = False
        for tok in _split_csv(status):
            if tok.lower() == "all":
                all_statuses = True
            elif re.fullmatch(r"\d+", tok):
                statuses.add(int(tok))
            else:
                raise ConfigError(f"Invalid value: {tok!r}, for -{flag}c (status codes must be numeric or 'all')")

        sizes = set()
        for tok in _split_csv(size):
            if not re.fullmatch(r"\d+", tok):
                raise ConfigError(f"Invalid value: {tok!r}, for -{flag}l (content sizes must be integers)")
            sizes.add(int(tok))

        return cls(
            statuses=frozenset(statuses),
            all_statuses=all_statuses,
            sizes=frozenset(sizes),
            strings=tuple(_split_csv(strings)),
        )

    def describe(self) -> str:
        parts = []
        if self.has_status:
            codes = ["all"] if self.all_statuses else []
            codes += [str(c) for c in sorted(self.statuses)]
            parts.append(f"status [{','.join(codes)}]")
        if self.sizes:
            parts.append(f"size [{','.join(str(s) for s in sorted(self.sizes))}]")
        if self.strings:
            parts.append(f"strings {list(self.strings)}")
        return "  ".join(parts) if parts else "—"


@dataclass(frozen=True)
class Config:
    method: str = DEFAULT_METHOD
    post_data: str = ""
    headers: Tuple[str, ...] = ()
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    max_connections: int = DEFAULT_MAX_CONNECTIONS
    follow_redirects: bool = False
    match: Rules = field(default_factory=Rules)
    filter: Rules = field(default_factory=Rules)
    output_file: Optional[str] = None
    cache_file: str = WEB_CACHE_FILE
    web_cache: bool = False
    random_agent: bool = False
    verbose: bool = False
    silent: bool = False
    debug: bool = False
    wordlist_file: Optional[str] = None
    url_file: Optional[str] = None
    urls: Tuple[str, ...] = ()

    @property
    def filter_mode(self) -> bool:
        return bool(self.filter)

    @property
    def needs_body_match(self) -> bool:
        return self.match.has_strings or self.filter.has_strings

    @property
    def cache_probe_mode(self) -> bool:
        """Web-cache detection over bare targets, without a wordlist."""
        return self.web_cache and not self.wordlist_file


def validate(cfg: Config) -> Config:
    """Reject invalid combinations before any request is issued."""
    if cfg.concurrency < 1:
        raise ConfigError("-c must be >= 1.")
    if cfg.timeout <= 0:
        raise ConfigError("-to must be > 0.")
    if cfg.retries < 0:
        raise ConfigError("-retries must be >= 0.")
    if cfg.max_connections < 1:
        raise ConfigError("connection pool size must be >= 1.")
    if cfg.match and cfg.filter:
        raise ConfigError("Can't run any of the Match(s) and Filter(s) at the same time.")

    has_targets = bool(cfg.url_file) or bool(cfg.urls)
    if not cfg.web_cache:
        if not cfg.wordlist_file and not has_targets:
            raise ConfigError("Please specify wordlist and target using -w/--wordlist, -l or -u.")
        if not cfg.wordlist_file:
            raise ConfigError("Please specify a wordlist using -w/--wordlist.")
    if not has_targets:
        raise ConfigError("Please specify target using -l or -u.")
    return cfg


def build_config(args) -> Config:
    """Turn parsed CLI arguments into a validated :class:`Config`."""
    match = Rules.parse(status=args.match_status, size=args.match_size,
                        strings=args.match_strings, flag="m")
    filt = Rules.parse(status=args.filter_status, size=args.filter_size,
                       strings=args.filter_strings, flag="f")

    cfg = Config(
        method=(args.method or DEFAULT_METHOD).upper(),
        post_data=args.data or "",
        headers=tuple(_split_csv(args.headers)),
        concurrency=args.concurrency,
        timeout=args.timeout,
        retries=args.retries,
        max_connections=max(DEFAULT_MAX_CONNECTIONS, args.concurrency),
        follow_redirects=args.follow_redirects,
        match=match,
        filter=filt,
        output_file=args.output,
        web_cache=args.webcache,
        random_agent=args.random_agent,
        verbose=args.verbose,
        silent=args.silent,
        debug=args.debug,
        wordlist_file=args.wordlist,
        url_file=args.list,
        urls=tuple(_split_csv(args.urls)),
    )
    return validate(cfg)
