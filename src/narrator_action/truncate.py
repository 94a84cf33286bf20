"""Bound values written to size-limited platform outputs.

Workflow step outputs have a hard byte ceiling; writing past it corrupts
the channel. Values are cut explicitly and flagged so callers can point
consumers at the artifact copy instead.
"""

from .config import DEFAULT_OUTPUT_LIMIT_BYTES
from .models import TruncatedOutput


def bound(value: str, limit: int = DEFAULT_OUTPUT_LIMIT_BYTES) -> TruncatedOutput:
    """Return *value* unchanged if it fits in *limit* UTF-8 bytes, else a flagged prefix.

    The prefix is the longest run of whole characters whose encoding fits
    in *limit* bytes, so it is exactly *limit* bytes unless the cut would
    split a multi-byte character.
    """
    if limit < 0:
        raise ValueError("limit must be non-negative")

    encoded = value.encode("utf-8")
    if len(encoded) <= limit:
        return TruncatedOutput(value=value, truncated=False)

    # Dropping a partial trailing sequence keeps the prefix decodable.
    prefix = encoded[:limit].decode("utf-8", errors="ignore")
    return TruncatedOutput(value=prefix, truncated=True)
