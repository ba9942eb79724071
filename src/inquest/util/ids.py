"""Identifier types for sessions.

A session snapshot carries two keys for the same entity: the backend row
``id`` and the externally addressable ``publicId``. Only the public one is
valid in URLs and API calls, so the two are kept as distinct types.
"""

from __future__ import annotations

from typing import NewType

SessionRowId = NewType("SessionRowId", int)
PublicId = NewType("PublicId", str)


def require_public_id(value: object) -> PublicId:
    if isinstance(value, bool) or not isinstance(value, str):
        raise TypeError(f"public id must be a string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise ValueError("public id must be a non-empty string")
    return PublicId(stripped)
