"""Permission catalog: the flat set of definable permissions.

Permissions are grouped by service and then by category (a free-text
label). The catalog validates new definitions and answers the lookups
the selection tree and the authority resolver need.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..exceptions import DuplicateKeyError, InvalidFormatError, SystemEntityProtectedError
from ..models import Permission
from .constants import Patterns

logger = logging.getLogger(__name__)


def validate_permission_string(permission: str, *, field: str = "permissions") -> str:
    """Check the ``resource:action`` format (wildcards allowed).

    Raises:
        InvalidFormatError: if the string does not match.
    """
    candidate = permission.strip()
    if not Patterns.PERMISSION.match(candidate):
        raise InvalidFormatError(
            f"Invalid permission format: {permission!r} (expected e.g. 'user:manage' or '*:*')",
            field=field,
            value=permission,
        )
    return candidate


class PermissionCatalog:
    """Immutable view over all permission definitions.

    Args:
        permissions: Every known permission, across all services.

    Example::

        catalog = PermissionCatalog(backend.list_permissions())
        catalog.grouped_by_service()["auth"]["user-mgmt"]
        # [Permission(resource="user", action="read", ...), ...]
    """

    def __init__(self, permissions: Iterable[Permission] = ()) -> None:
        self._permissions: tuple[Permission, ...] = tuple(permissions)
        self._by_key: dict[tuple[str, str], Permission] = {}
        for perm in self._permissions:
            if perm.key in self._by_key:
                logger.warning(
                    "Duplicate permission %s in service %s; keeping first definition",
                    perm.permission_string,
                    perm.service_id,
                )
                continue
            self._by_key[perm.key] = perm

    def __iter__(self):
        return iter(self._permissions)

    def __len__(self) -> int:
        return len(self._permissions)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    # ── Lookups ─────────────────────────────────────────

    def get(self, service_id: str, permission_string: str) -> Permission | None:
        return self._by_key.get((service_id, permission_string))

    def services(self) -> tuple[str, ...]:
        """Service ids in first-seen order."""
        return tuple(dict.fromkeys(p.service_id for p in self._permissions))

    def categories(self, service_id: str) -> tuple[str, ...]:
        return tuple(dict.fromkeys(p.category for p in self._permissions if p.service_id == service_id))

    def permission_strings(self, service_id: str | None = None) -> frozenset[str]:
        return frozenset(
            p.permission_string for p in self._permissions if service_id is None or p.service_id == service_id
        )

    def grouped_by_service(self, service_id: str | None = None) -> dict[str, dict[str, list[Permission]]]:
        """Group permissions as ``{service_id: {category: [Permission, ...]}}``.

        Insertion order follows the catalog order, which is the order the
        authorization service returned them in.
        """
        grouped: dict[str, dict[str, list[Permission]]] = {}
        for perm in self._by_key.values():
            if service_id is not None and perm.service_id != service_id:
                continue
            grouped.setdefault(perm.service_id, {}).setdefault(perm.category, []).append(perm)
        return grouped

    def search(self, keyword: str, service_id: str | None = None) -> list[Permission]:
        """Case-insensitive substring match on string, display name and description."""
        needle = keyword.strip().lower()
        return [
            perm
            for perm in self._by_key.values()
            if (service_id is None or perm.service_id == service_id)
            and (not needle or matches_keyword(perm, needle))
        ]

    # ── Validation & guards ─────────────────────────────

    def validate_permission(self, permission: Permission, *, is_update: bool = False) -> None:
        """Validate a permission definition before it is sent to the service.

        Raises:
            InvalidFormatError: resource or action has an invalid format.
            DuplicateKeyError: ``(service_id, resource, action)`` already exists
                (creation only).
        """
        if not permission.service_id.strip():
            raise InvalidFormatError("Service is required", field="service_id")
        if not Patterns.RESOURCE.match(permission.resource):
            raise InvalidFormatError(
                "Resource may only contain lowercase letters, digits, '_' and '*'",
                field="resource",
                value=permission.resource,
            )
        if not Patterns.ACTION.match(permission.action):
            raise InvalidFormatError(
                "Action may only contain lowercase letters, digits, '_', ':' and '*'",
                field="action",
                value=permission.action,
            )
        if not is_update and permission.key in self._by_key:
            raise DuplicateKeyError(
                f"Permission {permission.permission_string} already exists in service {permission.service_id}",
                field="action",
                service_id=permission.service_id,
                permission=permission.permission_string,
            )

    @staticmethod
    def can_delete(permission: Permission) -> bool:
        return not permission.is_system

    @staticmethod
    def can_deactivate(permission: Permission) -> bool:
        return not permission.is_system

    @staticmethod
    def ensure_can_delete(permission: Permission) -> None:
        if permission.is_system:
            raise SystemEntityProtectedError(
                f"System permission {permission.permission_string} cannot be deleted",
                permission=permission.permission_string,
            )

    @staticmethod
    def ensure_can_deactivate(permission: Permission) -> None:
        if permission.is_system:
            raise SystemEntityProtectedError(
                f"System permission {permission.permission_string} cannot be deactivated",
                permission=permission.permission_string,
            )


def matches_keyword(permission: Permission, needle: str) -> bool:
    """``needle`` must already be lower-cased."""
    return (
        needle in permission.permission_string.lower()
        or needle in permission.display_name.lower()
        or needle in (permission.description or "").lower()
    )


__all__ = [
    "PermissionCatalog",
    "matches_keyword",
    "validate_permission_string",
]
