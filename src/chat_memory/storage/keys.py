"""Logical persistence keys used by the engine."""

from __future__ import annotations

MEMORY_PREFIX = "memory"


def session_key(user_id: str, session_id: str) -> str:
    return f"{MEMORY_PREFIX}/{user_id}/{session_id}"


def profile_key(user_id: str) -> str:
    return f"{MEMORY_PREFIX}/{user_id}/profile"


def longterm_key(user_id: str) -> str:
    return f"{MEMORY_PREFIX}/{user_id}/longterm"


def preferences_key(user_id: str) -> str:
    return f"{MEMORY_PREFIX}/{user_id}/preferences"


RESERVED_SESSION_IDS = frozenset({"profile", "longterm", "preferences"})
