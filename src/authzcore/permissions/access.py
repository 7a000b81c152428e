"""Wildcard-aware permission matching.

Wildcards stay literal in role and template definitions; they are only
interpreted here, when a granted set is checked against a concrete
permission.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .constants import SEPARATOR, WILDCARD

logger = logging.getLogger(__name__)


def split_permission(permission: str) -> tuple[str, str]:
    """Split ``resource:action`` on the first separator.

    The action keeps any further segments (``tools:register:nszu`` →
    ``("tools", "register:nszu")``).
    """
    resource, _, action = permission.partition(SEPARATOR)
    return resource, action


def is_wildcard(permission: str) -> bool:
    """True if either side of the permission contains ``*``."""
    return WILDCARD in permission


def _action_matches(granted: str, required: str) -> bool:
    if granted == WILDCARD or granted == required:
        return True
    # "register:*" covers "register:nszu" and deeper
    if granted.endswith(SEPARATOR + WILDCARD):
        prefix = granted[: -len(WILDCARD)]
        return required.startswith(prefix) and len(required) > len(prefix)
    return False


def permission_matches(granted: str, required: str) -> bool:
    """Check whether one granted permission covers a required permission.

    Rules:
    1. Exact string match.
    2. ``*`` as resource matches any resource.
    3. ``*`` as action matches any action, including multi-segment ones.
    4. An action ending in ``:*`` matches any deeper action under that prefix.

    Example::

        permission_matches("*:*", "user:read")                 # True
        permission_matches("user:*", "user:delete")            # True
        permission_matches("tools:register:*", "tools:register:nszu")  # True
        permission_matches("user:read", "user:write")          # False
    """
    if granted == required:
        return True
    if not is_wildcard(granted):
        return False

    g_resource, g_action = split_permission(granted)
    r_resource, r_action = split_permission(required)
    if g_resource != WILDCARD and g_resource != r_resource:
        return False
    return _action_matches(g_action, r_action)


def has_permission(granted: Iterable[str], required: str) -> bool:
    """Check if any permission in ``granted`` covers ``required``."""
    granted_set = set(granted)
    if required in granted_set:
        return True
    for perm in granted_set:
        if is_wildcard(perm) and permission_matches(perm, required):
            logger.debug("'%s' granted through wildcard '%s'", required, perm)
            return True
    return False


__all__ = [
    "has_permission",
    "is_wildcard",
    "permission_matches",
    "split_permission",
]
