"""``Content-Range`` parsing for chunked relay uploads."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from domain.common.exceptions import ContentRangeInvalidException

_CONTENT_RANGE = re.compile(r"^\s*bytes\s+(\d+)-(\d+)/(\d+)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def to_header(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def parse_content_range(header: Optional[str]) -> ByteRange:
    """Parse ``bytes <start>-<end>/<total>`` (end inclusive)."""
    if not header:
        raise ContentRangeInvalidException("Content-Range header is required", header=header)
    match = _CONTENT_RANGE.match(header)
    if match is None:
        raise ContentRangeInvalidException("Malformed Content-Range header", header=header)
    start, end, total = (int(g) for g in match.groups())
    if end < start or end >= total:
        raise ContentRangeInvalidException("Content-Range outside of declared total", header=header)
    return ByteRange(start=start, end=end, total=total)
