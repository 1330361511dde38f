from typing import Optional


def constant_time_equals(supplied: str, expected: str) -> bool:
    """
    Compare two secrets without leaking where they differ or how long the expected one is.
    Walks the longer of the two; the shorter is reused cyclically and a length
    mismatch is folded into the result instead of returning early.
    """
    a = supplied.encode("utf-8")
    b = expected.encode("utf-8")
    if not a or not b:
        return False
    mismatch = 0 if len(a) == len(b) else 1
    for i in range(max(len(a), len(b))):
        mismatch |= a[i % len(a)] ^ b[i % len(b)]
    return mismatch == 0


def verify(supplied: Optional[str], configured: Optional[str]) -> bool:
    """True only when both secrets are non-empty and equal. Never raises."""
    if not configured or not supplied:
        return False
    return constant_time_equals(supplied, configured)
