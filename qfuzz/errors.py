class QfuzzError(Exception):
    """Base class for qfuzz errors."""


class ConfigError(QfuzzError, ValueError):
    """Invalid flag value or flag combination; fatal before any request."""


class InvalidURLError(QfuzzError, ValueError):
    """A target URL could not be parsed; the job is skipped."""


class RateLimitExhausted(QfuzzError):
    """Still HTTP 429 after every configured retry."""

    def __init__(self, url: str, attempts: int):
        super().__init__(f"429 Too Many Requests after {attempts} retries")
        self.url = url
        self.attempts = attempts


class OutputWriteError(QfuzzError):
    """Writing a result file failed; terminates the run."""


class JobCancelled(QfuzzError):
    """The run was interrupted while this job was waiting."""
