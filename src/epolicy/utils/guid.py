"""Utilities for working with enterprise policy GUID values."""

from __future__ import annotations

import re

__all__ = ["GUID_PATTERN", "extract_guid", "same_guid", "sanitize_guid"]

GUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


def sanitize_guid(value: str) -> str:
    """Return a GUID stripped of surrounding braces and whitespace.

    Identifiers copied out of portals or CLI output sometimes carry a pair of
    braces or trailing whitespace. Inner braces are preserved.

    Args:
        value: GUID string that may include braces or surrounding whitespace.

    Returns:
        A sanitized GUID string.
    """

    trimmed = value.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        trimmed = trimmed[1:-1]
    return trimmed.strip()


def extract_guid(*values: str | None) -> str | None:
    """Return the policy GUID from the first value that contains one.

    System identifiers come back as a bare GUID, a GUID embedded in a path such as
    ``/regions/unitedstates/providers/Microsoft.PowerPlatform/enterprisePolicies/<guid>``,
    or a full ARM id. The trailing GUID is the policy identifier in every path
    shape, so the last match wins. Subscription segments never identify a policy
    and are skipped. The result is lower-cased.
    """

    for value in values:
        if not value:
            continue
        text = sanitize_guid(value)
        candidates = [
            match.group(0)
            for match in GUID_PATTERN.finditer(text)
            if not text[: match.start()].lower().endswith("subscriptions/")
        ]
        if candidates:
            return candidates[-1].lower()
    return None


def same_guid(left: str | None, right: str | None) -> bool:
    """Return ``True`` when both values carry the same canonical GUID."""

    a = extract_guid(left)
    return a is not None and a == extract_guid(right)
