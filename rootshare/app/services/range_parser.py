"""Parsing of single-interval HTTP ``Range`` headers."""
import re
from typing import Optional

from rootshare.app.models.transfer import ByteRange, RangeKind, RangeOutcome

_RANGE_PATTERN = re.compile(r"bytes=([0-9]*)-([0-9]*)")

FULL = RangeOutcome(RangeKind.FULL)
UNSATISFIABLE = RangeOutcome(RangeKind.UNSATISFIABLE)
MALFORMED = RangeOutcome(RangeKind.MALFORMED)


def parse_range(range_header: Optional[str], file_size: int) -> RangeOutcome:
    """Parse ``bytes=<start>-<end>`` against a file of ``file_size`` bytes.

    Either bound may be omitted. A missing start means offset 0, it is not a
    suffix length. The end is clamped to the last byte of the file. Multiple
    ranges are not supported and count as malformed.
    """
    if range_header is None or not range_header.strip():
        return FULL

    value = range_header.strip()
    if "," in value:
        return MALFORMED

    match = _RANGE_PATTERN.fullmatch(value)
    if not match:
        return MALFORMED

    start_text, end_text = match.groups()
    if not start_text and not end_text:
        return MALFORMED

    start = int(start_text) if start_text else 0
    end = min(int(end_text), file_size - 1) if end_text else file_size - 1

    if start > end or start >= file_size:
        return UNSATISFIABLE
    return RangeOutcome(RangeKind.PARTIAL, ByteRange(start, end))


def content_range(byte_range: ByteRange, file_size: int) -> str:
    return f"bytes {byte_range.start}-{byte_range.end}/{file_size}"


def unsatisfied_range(file_size: int) -> str:
    return f"bytes */{file_size}"
