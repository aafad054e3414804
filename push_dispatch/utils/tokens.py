from __future__ import annotations


def hide_token(token: str, mark_len: int = 10) -> str:
    """Mask the first and last ``mark_len`` characters of a device token.

    Tokens too short to keep anything in the middle are masked entirely.
    """
    if not token:
        return ""
    if len(token) < mark_len * 2:
        return "*" * len(token)
    return "*" * mark_len + token[mark_len:-mark_len] + "*" * mark_len
