"""qfuzz: concurrent HTTP content-discovery fuzzer."""

__version__ = "1.0.0"
