"""Sensitive-value masking for log output.

``redact_sensitive_fields`` replaces values whose keys match known sensitive
markers, recursively and with a depth limit. ``mask_secret`` shortens a
single secret (an API key, a signed header) to a recognisable prefix.
"""

from __future__ import annotations

_MAX_REDACT_DEPTH = 20

# Substring match, case-insensitive.
SENSITIVE_KEY_MARKERS: list[str] = [
    "password",
    "secret",
    "token",
    "apikey",
    "api-key",
    "x-sts-gci-headers",
    "credential",
    "authorization",
]


def mask_secret(value: str | None, *, visible: int = 4, mask: str = "***") -> str:
    """Return ``value`` with everything but a short prefix hidden."""
    if not value:
        return mask
    if len(value) <= visible * 2:
        return mask
    return f"{value[:visible]}{mask}"


def redact_sensitive_fields(
    value: object,
    *,
    mask: str = "***",
    depth: int = 0,
    max_depth: int = _MAX_REDACT_DEPTH,
) -> object:
    """Recursively replace sensitive values in dicts/lists.

    Keys are matched by *substring* against ``SENSITIVE_KEY_MARKERS``
    (case-insensitive).  When ``max_depth`` is exceeded the entire
    sub-tree is replaced with *mask*.
    """
    if depth >= max_depth:
        return mask
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, val in value.items():
            if any(marker in str(key).lower() for marker in SENSITIVE_KEY_MARKERS):
                redacted[key] = mask
            else:
                redacted[key] = redact_sensitive_fields(
                    val, mask=mask, depth=depth + 1, max_depth=max_depth,
                )
        return redacted
    if isinstance(value, list):
        return [
            redact_sensitive_fields(
                item, mask=mask, depth=depth + 1, max_depth=max_depth,
            )
            for item in value
        ]
    return value
