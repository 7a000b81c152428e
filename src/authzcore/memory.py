"""In-process ``AuthorizationBackend``.

Holds every entity in dictionaries and enforces the same identity rules the
remote service does. Used for previews, offline work and tests.

Failure injection::

    backend = InMemoryBackend(...)
    backend.fail_next("set_template_default", after=1)
    # the second set_template_default call raises BackendError once
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Iterable, Sequence

from .exceptions import AuthzError, BackendError, DanglingReferenceError, DuplicateKeyError
from .interfaces import AuthorizationBackend
from .models import (
    GlobalRole,
    Permission,
    PermissionTemplate,
    ServiceRole,
    ServiceRoleKey,
    UserTypeDefinition,
)

logger = logging.getLogger(__name__)


class InMemoryBackend(AuthorizationBackend):
    """Dictionary-backed authorization service. Thread-safe."""

    def __init__(
        self,
        global_roles: Iterable[GlobalRole] = (),
        service_roles: Iterable[ServiceRole] = (),
        templates: Iterable[PermissionTemplate] = (),
        user_types: Iterable[UserTypeDefinition] = (),
        permissions: Iterable[Permission] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._global_roles: dict[str, GlobalRole] = {r.role_id: r for r in global_roles}
        self._service_roles: dict[ServiceRoleKey, ServiceRole] = {r.key: r for r in service_roles}
        self._templates: dict[str, PermissionTemplate] = {t.id: t for t in templates}
        self._user_types: dict[str, UserTypeDefinition] = {t.type_id: t for t in user_types}
        self._permissions: dict[tuple[str, str], Permission] = {p.key: p for p in permissions}
        numeric = [int(tid) for tid in self._templates if tid.isdigit()]
        self._ids = itertools.count(max(numeric, default=0) + 1)
        # operation -> [calls to let through, error to raise]
        self._failures: dict[str, list] = {}

    # ── Failure injection ───────────────────────────────

    def fail_next(self, operation: str, *, after: int = 0, error: AuthzError | None = None) -> None:
        """Make ``operation`` fail once, after letting ``after`` calls succeed."""
        error = error or BackendError(f"Injected failure in {operation}", operation=operation)
        with self._lock:
            self._failures[operation] = [after, error]

    def _maybe_fail(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending is None:
            return
        if pending[0] > 0:
            pending[0] -= 1
            return
        del self._failures[operation]
        logger.debug("Raising injected failure for %s", operation)
        raise pending[1]

    # ── Snapshots ───────────────────────────────────────

    def list_global_roles(self) -> Sequence[GlobalRole]:
        with self._lock:
            return tuple(self._global_roles.values())

    def list_service_roles(self) -> Sequence[ServiceRole]:
        with self._lock:
            return tuple(self._service_roles.values())

    def list_permission_templates(self) -> Sequence[PermissionTemplate]:
        with self._lock:
            return tuple(self._templates.values())

    def list_user_types(self) -> Sequence[UserTypeDefinition]:
        with self._lock:
            return tuple(self._user_types.values())

    def list_permissions(self) -> Sequence[Permission]:
        with self._lock:
            return tuple(self._permissions.values())

    # ── Global roles ────────────────────────────────────

    def create_global_role(self, role: GlobalRole) -> GlobalRole:
        with self._lock:
            self._maybe_fail("create_global_role")
            if role.role_id in self._global_roles:
                raise DuplicateKeyError(f"Role {role.role_id} already exists", field="role_id")
            self._global_roles[role.role_id] = role
            return role

    def update_global_role(self, role: GlobalRole) -> GlobalRole:
        with self._lock:
            self._maybe_fail("update_global_role")
            self._existing_global(role.role_id)
            self._global_roles[role.role_id] = role
            return role

    def set_global_role_active(self, role_id: str, active: bool) -> GlobalRole:
        with self._lock:
            self._maybe_fail("set_global_role_active")
            role = self._existing_global(role_id).model_copy(update={"is_active": active})
            self._global_roles[role_id] = role
            return role

    def delete_global_role(self, role_id: str) -> None:
        with self._lock:
            self._maybe_fail("delete_global_role")
            self._existing_global(role_id)
            del self._global_roles[role_id]

    def _existing_global(self, role_id: str) -> GlobalRole:
        try:
            return self._global_roles[role_id]
        except KeyError:
            raise DanglingReferenceError(f"Global role {role_id} does not exist", field="role_id") from None

    # ── Service roles ───────────────────────────────────

    def create_service_role(self, role: ServiceRole) -> ServiceRole:
        with self._lock:
            self._maybe_fail("create_service_role")
            if role.key in self._service_roles:
                raise DuplicateKeyError(f"Service role {role.key} already exists", field="role_name")
            self._service_roles[role.key] = role
            return role

    def update_service_role(self, role: ServiceRole) -> ServiceRole:
        with self._lock:
            self._maybe_fail("update_service_role")
            self._existing_service(role.key)
            self._service_roles[role.key] = role
            return role

    def set_service_role_active(self, key: ServiceRoleKey, active: bool) -> ServiceRole:
        with self._lock:
            self._maybe_fail("set_service_role_active")
            key = ServiceRoleKey.coerce(key)
            role = self._existing_service(key).model_copy(update={"is_active": active})
            self._service_roles[key] = role
            return role

    def delete_service_role(self, key: ServiceRoleKey) -> None:
        with self._lock:
            self._maybe_fail("delete_service_role")
            key = ServiceRoleKey.coerce(key)
            self._existing_service(key)
            del self._service_roles[key]

    def _existing_service(self, key: ServiceRoleKey) -> ServiceRole:
        try:
            return self._service_roles[key]
        except KeyError:
            raise DanglingReferenceError(f"Service role {key} does not exist", field="role_name") from None

    # ── Permissions ─────────────────────────────────────

    def create_permission(self, permission: Permission) -> Permission:
        with self._lock:
            self._maybe_fail("create_permission")
            if permission.key in self._permissions:
                raise DuplicateKeyError(
                    f"Permission {permission.permission_string} already exists in {permission.service_id}",
                    field="action",
                )
            self._permissions[permission.key] = permission
            return permission

    def update_permission(self, permission: Permission) -> Permission:
        with self._lock:
            self._maybe_fail("update_permission")
            self._existing_permission(permission.service_id, permission.permission_string)
            self._permissions[permission.key] = permission
            return permission

    def set_permission_active(self, service_id: str, permission_string: str, active: bool) -> Permission:
        with self._lock:
            self._maybe_fail("set_permission_active")
            perm = self._existing_permission(service_id, permission_string).model_copy(update={"is_active": active})
            self._permissions[perm.key] = perm
            return perm

    def delete_permission(self, service_id: str, permission_string: str) -> None:
        with self._lock:
            self._maybe_fail("delete_permission")
            self._existing_permission(service_id, permission_string)
            del self._permissions[(service_id, permission_string)]

    def _existing_permission(self, service_id: str, permission_string: str) -> Permission:
        try:
            return self._permissions[(service_id, permission_string)]
        except KeyError:
            raise DanglingReferenceError(
                f"Permission {permission_string} does not exist in {service_id}", field="permission"
            ) from None

    # ── Templates ───────────────────────────────────────

    def create_permission_template(self, template: PermissionTemplate) -> PermissionTemplate:
        """Create a template; an empty ``id`` gets the next numeric id."""
        with self._lock:
            self._maybe_fail("create_permission_template")
            if not template.id:
                template = template.model_copy(update={"id": str(next(self._ids))})
            if template.id in self._templates:
                raise DuplicateKeyError(f"Template {template.id} already exists", field="id")
            self._templates[template.id] = template
            return template

    def update_permission_template(self, template: PermissionTemplate) -> PermissionTemplate:
        with self._lock:
            self._maybe_fail("update_permission_template")
            self._existing_template(template.id)
            self._templates[template.id] = template
            return template

    def set_permission_template_active(self, template_id: str, active: bool) -> PermissionTemplate:
        with self._lock:
            self._maybe_fail("set_permission_template_active")
            template = self._existing_template(template_id).model_copy(update={"is_active": active})
            self._templates[template.id] = template
            return template

    def delete_permission_template(self, template_id: str) -> None:
        with self._lock:
            self._maybe_fail("delete_permission_template")
            self._existing_template(template_id)
            del self._templates[str(template_id)]

    def set_template_default(self, template_id: str, user_type: str, is_default: bool) -> PermissionTemplate:
        """Flip one template's default flag and mirror it in the user type's default names."""
        with self._lock:
            self._maybe_fail("set_template_default")
            previous = self._existing_template(template_id)
            template = previous.model_copy(update={"user_type": user_type, "is_default": is_default})
            self._templates[template.id] = template

            if previous.user_type and previous.user_type != user_type:
                self._drop_default_name(previous.user_type, template.name)
            definition = self._user_types.get(user_type)
            if definition is not None:
                names = tuple(n for n in definition.default_template_names if n != template.name)
                if is_default:
                    names = (template.name,) + names
                self._user_types[user_type] = definition.model_copy(update={"default_template_names": names})
            return template

    def _drop_default_name(self, type_id: str, name: str) -> None:
        definition = self._user_types.get(type_id)
        if definition is None or name not in definition.default_template_names:
            return
        names = tuple(n for n in definition.default_template_names if n != name)
        self._user_types[type_id] = definition.model_copy(update={"default_template_names": names})

    def _existing_template(self, template_id: str) -> PermissionTemplate:
        try:
            return self._templates[str(template_id)]
        except KeyError:
            raise DanglingReferenceError(f"Template {template_id} does not exist", field="id") from None

    # ── User types ──────────────────────────────────────

    def create_user_type(self, user_type: UserTypeDefinition) -> UserTypeDefinition:
        with self._lock:
            self._maybe_fail("create_user_type")
            if user_type.type_id in self._user_types:
                raise DuplicateKeyError(f"User type {user_type.type_id} already exists", field="type_id")
            self._user_types[user_type.type_id] = user_type
            return user_type

    def update_user_type(self, user_type: UserTypeDefinition) -> UserTypeDefinition:
        with self._lock:
            self._maybe_fail("update_user_type")
            self._existing_user_type(user_type.type_id)
            self._user_types[user_type.type_id] = user_type
            return user_type

    def set_user_type_active(self, type_id: str, active: bool) -> UserTypeDefinition:
        with self._lock:
            self._maybe_fail("set_user_type_active")
            definition = self._existing_user_type(type_id).model_copy(update={"is_active": active})
            self._user_types[type_id] = definition
            return definition

    def delete_user_type(self, type_id: str) -> None:
        with self._lock:
            self._maybe_fail("delete_user_type")
            self._existing_user_type(type_id)
            del self._user_types[type_id]

    def _existing_user_type(self, type_id: str) -> UserTypeDefinition:
        try:
            return self._user_types[type_id]
        except KeyError:
            raise DanglingReferenceError(f"User type {type_id} does not exist", field="type_id") from None


__all__ = ["InMemoryBackend"]
