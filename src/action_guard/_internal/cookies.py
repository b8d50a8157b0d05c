"""Minimal ``Cookie`` header parsing shared by CSRF and session lookups."""

from __future__ import annotations


def parse_cookie_value(cookie_header: str, name: str) -> str | None:
    """Return the value of cookie *name* from a raw ``Cookie`` header.

    Entries are split on the **first** ``=`` only, so values that contain
    ``=`` (base64 padding, signed blobs) survive intact.  Names and values are
    trimmed.  An empty value is reported as ``None``.
    """
    for entry in cookie_header.split(";"):
        cookie_name, sep, value = entry.partition("=")
        if not sep:
            continue
        if cookie_name.strip() == name:
            value = value.strip()
            return value or None
    return None
