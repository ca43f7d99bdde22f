"""Random identifiers for calls, tags and Via branches."""

import random
import string

_ALPHANUM = string.digits + string.ascii_uppercase + string.ascii_lowercase
_HEX = "0123456789abcdef"
_BRANCH_COOKIE = "z9hG4bK-"


def generate_id(length):
    """Return a random alphanumeric string of ``length`` characters."""
    if length <= 0:
        return ""
    return "".join(random.choices(_ALPHANUM, k=length))


def generate_branch():
    """Return a Via branch: the magic cookie followed by 32 hex digits."""
    return _BRANCH_COOKIE + "".join(random.choices(_HEX, k=32))