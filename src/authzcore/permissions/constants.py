"""Format rules, bounds and grant tiers for the authorization model.

Provides:
- ``Patterns`` — compiled identifier and permission-string formats.
- ``Bounds`` — numeric limits (authority level, display order).
- ``GrantTier`` — precedence tiers reported by the authority resolver.
"""

from __future__ import annotations

import re

WILDCARD = "*"
SEPARATOR = ":"


class Patterns:
    """Formats accepted by the administrative console.

    Role ids, service role names and user type ids are upper snake case
    (``HOSPITAL_STAFF``). Permission strings are ``{resource}:{action}``
    where either side may be ``*`` and the action may carry further
    ``:``-separated segments (``tools:register:nszu``).
    """

    IDENTIFIER = re.compile(r"^[A-Z][A-Z0-9_]*$")
    PERMISSION = re.compile(r"^[a-z*][a-z0-9_*]*:[a-z*][a-z0-9_*:]*$")
    RESOURCE = re.compile(r"^[a-z*][a-z0-9_*]*$")
    ACTION = re.compile(r"^[a-z*][a-z0-9_*:]*$")


class Bounds:
    """Numeric limits.

    Authority level: lower value = higher authority.
    """

    AUTHORITY_LEVEL_MIN = 1
    AUTHORITY_LEVEL_MAX = 100
    DISPLAY_ORDER_MIN = 1
    DISPLAY_ORDER_MAX = 999


class GrantTier:
    """Where a resolved permission came from.

    Ranks document precedence for display and audit (user type default 90,
    template 85, direct assignment highest). They never arbitrate between
    grants: the model is additive, nothing can cancel a grant.
    """

    USER_TYPE_DEFAULT = "user_type_default"
    TEMPLATE = "template"
    DIRECT = "direct"

    RANKS: dict[str, int | None] = {
        USER_TYPE_DEFAULT: 90,
        TEMPLATE: 85,
        DIRECT: None,  # Unranked, always applies
    }

    # Lowest precedence first
    ORDER = (USER_TYPE_DEFAULT, TEMPLATE, DIRECT)


# Prefixes of synthetic selection-tree node keys
SERVICE_NODE_PREFIX = "service-"
CATEGORY_NODE_PREFIX = "category-"


__all__ = [
    "CATEGORY_NODE_PREFIX",
    "SEPARATOR",
    "SERVICE_NODE_PREFIX",
    "WILDCARD",
    "Bounds",
    "GrantTier",
    "Patterns",
]
