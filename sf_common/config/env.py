"""Environment variable and flag value parsing utilities."""

from __future__ import annotations

from typing import Iterable


def parse_bool_env(value: str | None) -> bool | None:
    """Parse a boolean from an environment variable string.

    Returns True for "1", "true", "yes", "on" (case-insensitive).
    Returns None if value is None.
    """
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int_list(values: Iterable[str] | str | None) -> list[int] | None:
    """Parse integers from repeated and/or comma-separated values.

    Example: ["1,2", "3"] -> [1, 2, 3]
    Returns None if no value was given. Raises ValueError on a token that is
    not a plain unsigned decimal (no sign, underscores or non-ASCII digits).
    """
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    parsed: list[int] = []
    seen_any = False
    for raw in values:
        seen_any = True
        for token in raw.split(","):
            token = token.strip()
            if not token:
                continue
            if not (token.isascii() and token.isdigit()):
                raise ValueError(f"not an unsigned integer: {token!r}")
            parsed.append(int(token))
    if not seen_any:
        return None
    return parsed
