"""
services/compression.py

Decides whether a client gets gzip-compressed responses. The encoding itself
is done by Starlette's GZipMiddleware (see middleware/compression.py).

Rules, in order:
  1) Request carries the opt-out header (x-no-compression) -> PASSTHROUGH
  2) Client does not accept gzip (absent, or gzip;q=0)      -> PASSTHROUGH
  3) Otherwise                                              -> COMPRESS,
     for bodies of at least `threshold` bytes (1024 by default)
"""

from __future__ import annotations

import enum
from typing import Mapping, Optional

GZIP = "gzip"


class CompressionDecision(str, enum.Enum):
    COMPRESS = "compress"
    PASSTHROUGH = "passthrough"


def accepts_encoding(accept_encoding: Optional[str], scheme: str = GZIP) -> bool:
    """
    True if the Accept-Encoding value admits `scheme`, honouring q=0
    ("gzip;q=0" means "never gzip") and the "*" wildcard.
    """
    if not accept_encoding:
        return False
    wildcard: Optional[bool] = None
    for part in accept_encoding.split(","):
        token, _, params = part.strip().partition(";")
        token = token.strip().lower()
        q = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                q = float(params[2:])
            except ValueError:
                q = 0.0
        if token == scheme:
            return q > 0
        if token == "*":
            wildcard = q > 0
    return bool(wildcard)


class ResponseCompressor:
    def __init__(self, level: int = 6, threshold: int = 1024, opt_out_header: str = "x-no-compression"):
        if not 0 <= level <= 9:
            raise ValueError("level must be between 0 and 9")
        self.level = level
        self.threshold = threshold
        self.opt_out_header = opt_out_header.lower()

    def decide(self, request_headers: Mapping[str, str]) -> CompressionDecision:
        if self.opt_out_header in request_headers:
            return CompressionDecision.PASSTHROUGH
        if not accepts_encoding(request_headers.get("accept-encoding")):
            return CompressionDecision.PASSTHROUGH
        return CompressionDecision.COMPRESS
