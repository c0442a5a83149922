import re

_TRAILING_NUMBER = re.compile(r"^(.*?)(\d+)$")


def next_version(current: str) -> str:
    """
    Derive the token that replaces ``current`` on a committed write.

    The trailing integer is incremented ("v1" -> "v2", "7" -> "8"); a token
    without one gets "-1" appended. Tokens only ever move forward, so a
    record never sees the same token twice.
    """
    match = _TRAILING_NUMBER.match(current)
    if match is None:
        return f"{current}-1"
    prefix, number = match.groups()
    return f"{prefix}{int(number) + 1}"
