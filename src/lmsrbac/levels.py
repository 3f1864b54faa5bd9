"""Authority level arithmetic.

Levels are integers where a LOWER number means MORE authority
(1 = super administrator, 25 = observer). Call sites use the helpers
below instead of raw ``<`` / ``>`` so the direction is stated once.
"""

from __future__ import annotations

from typing import Iterable

# Level of a principal with no active role: below every definable role.
NO_AUTHORITY_LEVEL = 2**31 - 1

# Most authoritative level a role may carry.
TOP_LEVEL = 1


def is_more_authoritative_than(level: int, other: int) -> bool:
    """True if ``level`` carries strictly more authority than ``other``."""
    return level < other


def is_within_authority(target_level: int, actor_level: int) -> bool:
    """True if an actor at ``actor_level`` may manage something at ``target_level``.

    Actors manage their own level and everything weaker.
    """
    return not is_more_authoritative_than(target_level, actor_level)


def highest_authority(levels: Iterable[int]) -> int:
    """Most authoritative level among ``levels``, or ``NO_AUTHORITY_LEVEL`` if empty."""
    return min(levels, default=NO_AUTHORITY_LEVEL)


def is_valid_role_level(level: object) -> bool:
    """Role levels are ints in ``[TOP_LEVEL, NO_AUTHORITY_LEVEL)``."""
    return (
        isinstance(level, int)
        and not isinstance(level, bool)
        and TOP_LEVEL <= level < NO_AUTHORITY_LEVEL
    )


__all__ = [
    "NO_AUTHORITY_LEVEL",
    "TOP_LEVEL",
    "highest_authority",
    "is_more_authoritative_than",
    "is_valid_role_level",
    "is_within_authority",
]
