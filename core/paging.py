from typing import Optional

from .errors import InvalidArgumentError


def resolve_limit(limit: Optional[int], default: int) -> int:
    """Page size for a listing call. None means the configured default; zero or less is rejected."""
    if limit is None:
        return default
    if limit <= 0:
        raise InvalidArgumentError(f"limit must be positive, got {limit}")
    return limit
