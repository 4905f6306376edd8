import re

from .errors import InvalidArgumentError

# Ids come from the identity provider. ":" is reserved as the pair separator.
USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")


def ensure_user_id(value: str) -> str:
    if not isinstance(value, str) or not USER_ID_PATTERN.match(value):
        raise InvalidArgumentError(f"Malformed user id: {value!r}")
    return value
