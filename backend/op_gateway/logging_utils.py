"""
Logging helpers.

Access tokens, continuation tokens, interaction references and hashes are
never logged in full.
"""
from typing import Optional


def mask(value: Optional[str], visible: int = 12) -> str:
    """Return the first `visible` characters followed by an ellipsis."""
    if not value:
        return "(none)"
    if len(value) <= visible:
        return value[:4] + "…"
    return value[:visible] + "…"
