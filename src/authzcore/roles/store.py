"""Role store: snapshot container plus the client-side validation layer.

The validators run before any remote mutation so a form can fail fast with
a field-scoped message. They raise (never return error values):

- ``InvalidFormatError``   — identifier or permission-string format
- ``DuplicateKeyError``    — role id / composite key / name collision
- ``InvalidRangeError``    — authority level or display order out of bounds
- ``CycleDetectedError``   — parent assignment would create a loop
- ``HierarchyDepthError``  — parent assignment would exceed the depth cap
- ``DanglingReferenceError`` — parent or updated entity does not exist
- ``SystemEntityProtectedError`` — protected change on a system entity

The remote service remains the final authority and may still reject.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..config import DEFAULT_MAX_HIERARCHY_DEPTH
from ..exceptions import (
    CycleDetectedError,
    DanglingReferenceError,
    DuplicateKeyError,
    HasDependentsError,
    InvalidFormatError,
    InvalidRangeError,
    SystemEntityProtectedError,
)
from ..models import (
    GlobalRole,
    Permission,
    PermissionTemplate,
    ServiceRole,
    ServiceRoleKey,
    UserTypeDefinition,
)
from ..permissions.catalog import PermissionCatalog, validate_permission_string
from ..permissions.constants import Bounds, Patterns
from .hierarchy import RoleHierarchy, walk_parent_chain

logger = logging.getLogger(__name__)


# ── Shared checks ───────────────────────────────────────


def _check_identifier(value: str, field: str, label: str) -> None:
    if not value or not value.strip():
        raise InvalidFormatError(f"{label} is required", field=field)
    if not Patterns.IDENTIFIER.match(value):
        raise InvalidFormatError(
            f"{label} may only contain uppercase letters, digits and '_' and must start with a letter",
            field=field,
            value=value,
        )


def _check_permissions(permissions: Iterable[str]) -> None:
    for perm in permissions:
        validate_permission_string(perm)


def _check_range(value: int, low: int, high: int, field: str) -> None:
    if not low <= value <= high:
        raise InvalidRangeError(
            f"{field} must be between {low} and {high}, got {value}",
            field=field,
            value=value,
            min=low,
            max=high,
        )


def _check_system_flags(previous, updated, flag: str, label: str) -> None:
    if getattr(previous, flag) != getattr(updated, flag):
        raise SystemEntityProtectedError(f"{flag} of {label} cannot be changed", field=flag)
    if getattr(previous, flag) and not updated.is_active:
        raise SystemEntityProtectedError(f"System entity {label} cannot be deactivated", field="is_active")


# ── Global roles ────────────────────────────────────────


def validate_global_role(
    role: GlobalRole,
    existing_roles: Iterable[GlobalRole],
    *,
    is_update: bool = False,
    max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
) -> None:
    """Validate a global role against the current snapshot.

    Creation rejects an existing ``role_id``. Update requires the role to
    exist, excludes it from the collision check, and keeps
    ``is_system_role`` immutable.

    Parent checks: the parent must exist, and the chain followed from the
    proposed parent must neither revisit ``role.role_id`` nor exceed
    ``max_depth`` hops. On update the moved subtree is checked for depth too.
    """
    _check_identifier(role.role_id, "role_id", "Role ID")

    roles = {r.role_id: r for r in existing_roles}
    previous = roles.get(role.role_id)
    if is_update:
        if previous is None:
            raise DanglingReferenceError(f"Global role {role.role_id} does not exist", field="role_id")
        _check_system_flags(previous, role, "is_system_role", role.role_id)

    # Parent checks precede the id collision check.
    _check_parent(role, roles, max_depth=max_depth, is_update=is_update)

    if not is_update and previous is not None:
        raise DuplicateKeyError(f"Role {role.role_id} already exists", field="role_id", role_id=role.role_id)

    _check_range(role.authority_level, Bounds.AUTHORITY_LEVEL_MIN, Bounds.AUTHORITY_LEVEL_MAX, "authority_level")
    _check_permissions(role.permissions)


def _check_parent(role: GlobalRole, roles: dict[str, GlobalRole], *, max_depth: int, is_update: bool) -> None:
    parent_id = role.parent_role_id
    if not parent_id:
        return
    if parent_id == role.role_id:
        raise CycleDetectedError(
            f"Role {role.role_id} cannot be its own parent",
            field="parent_role_id",
            path=[role.role_id, role.role_id],
        )
    if parent_id not in roles:
        raise DanglingReferenceError(
            f"Parent role {parent_id} does not exist",
            field="parent_role_id",
            parent_role_id=parent_id,
        )

    proposed = {**roles, role.role_id: role}
    walk_parent_chain(proposed, role.role_id, max_depth=max_depth)

    if is_update:
        # Subtree as it stands before the move
        hierarchy = RoleHierarchy(roles.values(), max_depth=max_depth)
        for rid in hierarchy.descendants(role.role_id):
            walk_parent_chain(proposed, rid, max_depth=max_depth)


def can_delete(role: GlobalRole | ServiceRole, existing_roles: Iterable[GlobalRole] = ()) -> bool:
    """False for system roles and for global roles that still have children."""
    if role.is_system_role:
        return False
    if isinstance(role, GlobalRole):
        return not any(r.parent_role_id == role.role_id and r.role_id != role.role_id for r in existing_roles)
    return True


def can_deactivate(role: GlobalRole | ServiceRole) -> bool:
    return not role.is_system_role


def ensure_can_delete(role: GlobalRole | ServiceRole, existing_roles: Iterable[GlobalRole] = ()) -> None:
    """Raise instead of returning False; deletion is never cascaded."""
    label = role.role_id if isinstance(role, GlobalRole) else str(role.key)
    if role.is_system_role:
        raise SystemEntityProtectedError(f"System role {label} cannot be deleted", role=label)
    if isinstance(role, GlobalRole):
        children = sorted(
            r.role_id for r in existing_roles if r.parent_role_id == role.role_id and r.role_id != role.role_id
        )
        if children:
            raise HasDependentsError(
                f"Role {label} still has child roles: {', '.join(children)}",
                role=label,
                children=children,
            )


def ensure_can_deactivate(role: GlobalRole | ServiceRole) -> None:
    if role.is_system_role:
        label = role.role_id if isinstance(role, GlobalRole) else str(role.key)
        raise SystemEntityProtectedError(f"System role {label} cannot be deactivated", role=label)


# ── Service roles ───────────────────────────────────────


def validate_service_role(
    role: ServiceRole,
    existing_roles: Iterable[ServiceRole],
    *,
    is_update: bool = False,
) -> None:
    """Validate a service role; identity is the ``(service_id, role_name)`` pair."""
    if not role.service_id or not role.service_id.strip():
        raise InvalidFormatError("Service is required", field="service_id")
    _check_identifier(role.role_name, "role_name", "Role name")

    roles = {r.key: r for r in existing_roles}
    previous = roles.get(role.key)
    if is_update:
        if previous is None:
            raise DanglingReferenceError(f"Service role {role.key} does not exist", field="role_name")
        _check_system_flags(previous, role, "is_system_role", str(role.key))
    elif previous is not None:
        raise DuplicateKeyError(
            f"Role {role.role_name} already exists in service {role.service_id}",
            field="role_name",
            service_id=role.service_id,
            role_name=role.role_name,
        )

    _check_permissions(role.permissions)


# ── User types ──────────────────────────────────────────


def validate_user_type(
    user_type: UserTypeDefinition,
    existing_types: Iterable[UserTypeDefinition],
    *,
    is_update: bool = False,
) -> None:
    _check_identifier(user_type.type_id, "type_id", "Type ID")

    types = {t.type_id: t for t in existing_types}
    previous = types.get(user_type.type_id)
    if is_update:
        if previous is None:
            raise DanglingReferenceError(f"User type {user_type.type_id} does not exist", field="type_id")
        _check_system_flags(previous, user_type, "is_system_type", user_type.type_id)
    elif previous is not None:
        raise DuplicateKeyError(f"User type {user_type.type_id} already exists", field="type_id")

    _check_range(user_type.display_order, Bounds.DISPLAY_ORDER_MIN, Bounds.DISPLAY_ORDER_MAX, "display_order")


def ensure_can_delete_user_type(user_type: UserTypeDefinition) -> None:
    if user_type.is_system_type:
        raise SystemEntityProtectedError(f"System user type {user_type.type_id} cannot be deleted")


# ── Templates ───────────────────────────────────────────


def validate_template(
    template: PermissionTemplate,
    existing_templates: Iterable[PermissionTemplate],
    *,
    is_update: bool = False,
) -> None:
    """Names must be unique: user types reference default templates by name."""
    if not template.name or not template.name.strip():
        raise InvalidFormatError("Template name is required", field="name")

    templates = list(existing_templates)
    if is_update and not any(t.id == template.id for t in templates):
        raise DanglingReferenceError(f"Template {template.id} does not exist", field="id")
    for other in templates:
        if other.id == template.id:
            if not is_update:
                raise DuplicateKeyError(f"Template {template.id} already exists", field="id")
            continue
        if other.name == template.name:
            raise DuplicateKeyError(f"Template name {template.name!r} is already used", field="name")


def ensure_can_delete_template(template: PermissionTemplate, user_types: Iterable[UserTypeDefinition] = ()) -> None:
    """A template still acting as some user type's default cannot be deleted."""
    referencing = sorted(t.type_id for t in user_types if template.name in t.default_template_names)
    if template.is_default and template.user_type and template.user_type not in referencing:
        referencing.append(template.user_type)
    if referencing:
        raise HasDependentsError(
            f"Template {template.name!r} is the default of: {', '.join(referencing)}",
            template_id=template.id,
            user_types=referencing,
        )


# ── Snapshot ────────────────────────────────────────────


class RoleStore:
    """Immutable snapshot of every entity the engine computes over.

    Built from the list operations of the authorization service; never
    mutated. ``with_*`` methods return a new snapshot.

    Args:
        global_roles: Platform-wide roles (the hierarchy forest).
        service_roles: Flat service-scoped roles.
        templates: Permission templates.
        user_types: User type definitions.
        permissions: The permission catalog.
        max_depth: Hierarchy depth cap.
    """

    def __init__(
        self,
        global_roles: Iterable[GlobalRole] = (),
        service_roles: Iterable[ServiceRole] = (),
        templates: Iterable[PermissionTemplate] = (),
        user_types: Iterable[UserTypeDefinition] = (),
        permissions: Iterable[Permission] = (),
        *,
        max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
    ) -> None:
        self.max_depth = max_depth
        self._global_roles: dict[str, GlobalRole] = {r.role_id: r for r in global_roles}
        self._service_roles: dict[ServiceRoleKey, ServiceRole] = {r.key: r for r in service_roles}
        self._templates: dict[str, PermissionTemplate] = {t.id: t for t in templates}
        self._user_types: dict[str, UserTypeDefinition] = {t.type_id: t for t in user_types}
        self.catalog = PermissionCatalog(permissions)
        self.hierarchy = RoleHierarchy(self._global_roles.values(), max_depth=max_depth)

    # ── Accessors ───────────────────────────────────────

    @property
    def global_roles(self) -> tuple[GlobalRole, ...]:
        return tuple(self._global_roles.values())

    @property
    def service_roles(self) -> tuple[ServiceRole, ...]:
        return tuple(self._service_roles.values())

    @property
    def templates(self) -> tuple[PermissionTemplate, ...]:
        return tuple(self._templates.values())

    @property
    def user_types(self) -> tuple[UserTypeDefinition, ...]:
        return tuple(self._user_types.values())

    def get_global_role(self, role_id: str) -> GlobalRole | None:
        return self._global_roles.get(role_id)

    def get_service_role(self, key: ServiceRoleKey | str) -> ServiceRole | None:
        return self._service_roles.get(ServiceRoleKey.coerce(key))

    def get_template(self, template_id: str | int) -> PermissionTemplate | None:
        return self._templates.get(str(template_id))

    def find_template_by_name(self, name: str) -> PermissionTemplate | None:
        for template in self._templates.values():
            if template.name == name:
                return template
        return None

    def get_user_type(self, type_id: str) -> UserTypeDefinition | None:
        return self._user_types.get(type_id)

    def templates_for_user_type(self, type_id: str) -> tuple[PermissionTemplate, ...]:
        return tuple(t for t in self._templates.values() if t.user_type == type_id)

    def service_ids(self) -> frozenset[str]:
        """Every service known from the catalog or from service roles."""
        return frozenset(self.catalog.services()) | {key.service_id for key in self._service_roles}

    # ── Derived snapshots ───────────────────────────────

    def _replace(self, **changes) -> "RoleStore":
        parts = {
            "global_roles": self._global_roles.values(),
            "service_roles": self._service_roles.values(),
            "templates": self._templates.values(),
            "user_types": self._user_types.values(),
            "permissions": tuple(self.catalog),
        }
        parts.update(changes)
        return RoleStore(**parts, max_depth=self.max_depth)

    def with_global_role(self, role: GlobalRole) -> "RoleStore":
        return self._replace(global_roles={**self._global_roles, role.role_id: role}.values())

    def without_global_role(self, role_id: str) -> "RoleStore":
        return self._replace(global_roles=[r for rid, r in self._global_roles.items() if rid != role_id])

    def with_service_role(self, role: ServiceRole) -> "RoleStore":
        return self._replace(service_roles={**self._service_roles, role.key: role}.values())

    def without_service_role(self, key: ServiceRoleKey | str) -> "RoleStore":
        key = ServiceRoleKey.coerce(key)
        return self._replace(service_roles=[r for k, r in self._service_roles.items() if k != key])

    def with_templates(self, templates: Iterable[PermissionTemplate]) -> "RoleStore":
        merged = dict(self._templates)
        merged.update((t.id, t) for t in templates)
        return self._replace(templates=merged.values())

    # ── Validation shortcuts ────────────────────────────

    def validate_global_role(self, role: GlobalRole, *, is_update: bool = False) -> None:
        validate_global_role(role, self.global_roles, is_update=is_update, max_depth=self.max_depth)

    def validate_service_role(self, role: ServiceRole, *, is_update: bool = False) -> None:
        validate_service_role(role, self.service_roles, is_update=is_update)

    def validate_user_type(self, user_type: UserTypeDefinition, *, is_update: bool = False) -> None:
        validate_user_type(user_type, self.user_types, is_update=is_update)

    def validate_template(self, template: PermissionTemplate, *, is_update: bool = False) -> None:
        validate_template(template, self.templates, is_update=is_update)
        for role_id in template.global_role_ids:
            if role_id not in self._global_roles:
                logger.warning("Template %s references unknown global role %s", template.name, role_id)
        for key in template.service_role_ids:
            if key not in self._service_roles:
                logger.warning("Template %s references unknown service role %s", template.name, key)

    def can_delete(self, role: GlobalRole | ServiceRole) -> bool:
        return can_delete(role, self.global_roles)

    def ensure_can_delete(self, role: GlobalRole | ServiceRole) -> None:
        ensure_can_delete(role, self.global_roles)


__all__ = [
    "RoleStore",
    "can_deactivate",
    "can_delete",
    "ensure_can_deactivate",
    "ensure_can_delete",
    "ensure_can_delete_template",
    "ensure_can_delete_user_type",
    "validate_global_role",
    "validate_service_role",
    "validate_template",
    "validate_user_type",
]
