"""Terminal output: colors, human-readable sizes and the logging handler."""

import logging
import sys

from colorama import Fore, Style
from colorama import init as colorama_init
from tqdm import tqdm

USE_COLOR = False

LOGGER_NAME = "qfuzz"

_LEVEL_TAGS = {
    logging.DEBUG: ("DBG", Fore.MAGENTA),
    logging.INFO: ("INF", Fore.CYAN),
    logging.WARNING: ("WRN", Fore.YELLOW),
    logging.ERROR: ("ERR", Fore.RED),
    logging.CRITICAL: ("FTL", Fore.RED),
}


def enable_color(enabled: bool) -> None:
    global USE_COLOR
    USE_COLOR = enabled
    if enabled:
        colorama_init()


def fmt_size(n) -> str:
    """Human-readable byte size."""
    if n is None or n < 0:
        return "—"
    if n < 1024:
        return f"{n}B"
    elif n < 1024 * 1024:
        v = n / 1024
        return f"{v:.1f}kB" if v < 100 else f"{v:.0f}kB"
    else:
        return f"{n / (1024 * 1024):.1f}MB"


def fmt_elapsed(seconds: float) -> str:
    mins, secs = divmod(seconds, 60)
    if mins:
        return f"{int(mins)}m {secs:.1f}s"
    return f"{secs:.1f}s"


def color_status(status: int) -> str:
    if not USE_COLOR:
        return f"[{status}]"
    if 200 <= status < 300:
        return Fore.GREEN + f"[{status}]" + Style.RESET_ALL
    elif 300 <= status < 400:
        return Fore.YELLOW + f"[{status}]" + Style.RESET_ALL
    elif 400 <= status < 500:
        return Fore.RED + f"[{status}]" + Style.RESET_ALL
    elif 500 <= status < 600:
        return Fore.MAGENTA + f"[{status}]" + Style.RESET_ALL
    return f"[{status}]"


def dim(text: str) -> str:
    if USE_COLOR:
        return Style.DIM + text + Style.RESET_ALL
    return text


def cyan(text: str) -> str:
    if USE_COLOR:
        return Fore.CYAN + text + Style.RESET_ALL
    return text


def yellow(text: str) -> str:
    if USE_COLOR:
        return Fore.YELLOW + text + Style.RESET_ALL
    return text


def emit(line: str) -> None:
    """Print a result line to stdout without tearing the progress bar."""
    tqdm.write(line, file=sys.stdout)


class TqdmHandler(logging.Handler):
    """Write log records through tqdm so they land above the progress bar."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=sys.stderr)
        except Exception:
            self.handleError(record)


class TagFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tag, color = _LEVEL_TAGS.get(record.levelno, ("???", ""))
        head = f"{color}[{tag}]{Style.RESET_ALL}" if USE_COLOR else f"[{tag}]"
        msg = f"{head} {record.getMessage()}"
        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)
        return msg


def setup_logging(*, debug: bool = False, silent: bool = False) -> logging.Logger:
    """Install the tqdm-aware handler on the package logger."""
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, TqdmHandler):
            logger.removeHandler(h)
    handler = TqdmHandler()
    handler.setFormatter(TagFormatter())
    logger.addHandler(handler)
    if debug:
        logger.setLevel(logging.DEBUG)
    elif silent:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger
