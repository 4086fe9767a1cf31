"""Reading wordlists and target lists."""

import gzip
from typing import Iterator, List

from qfuzz.errors import ConfigError


def _open_text(path: str):
    return gzip.open(path, "rt", encoding="utf-8", errors="ignore") if path.lower().endswith(".gz") \
        else open(path, "r", encoding="utf-8", errors="ignore")


def iter_lines(path: str, *, skip_blank: bool = False) -> Iterator[str]:
    """Lines of *path* without their line endings."""
    with _open_text(path) as f:
        for line in f:
            line = line.rstrip("\r\n")
            if skip_blank and not line.strip():
                continue
            yield line


def read_lines(path: str, *, skip_blank: bool = False) -> List[str]:
    try:
        return list(iter_lines(path, skip_blank=skip_blank))
    except OSError as e:
        raise ConfigError(f"Error reading {path}: {e}") from e


def count_lines(path: str) -> int:
    try:
        return sum(1 for _ in iter_lines(path))
    except OSError as e:
        raise ConfigError(f"Error reading {path}: {e}") from e


def load_targets(url_file=None, urls=()) -> List[str]:
    """Targets from -l (one per line) or the inline -u list."""
    if url_file:
        return read_lines(url_file, skip_blank=True)
    return [u for u in urls if u.strip()]
