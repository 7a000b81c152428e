"""Administrative operations: validate locally, then mutate remotely.

``RoleAdministration`` is constructed explicitly with a backend and a
config; there is no module-level instance. Every mutation loads a fresh
snapshot, runs the local checks (which raise before anything is sent) and
only then calls the backend. The backend stays the final authority and may
still reject.

Example::

    admin = RoleAdministration(InMemoryBackend(...), load_config_from_env())
    admin.create_global_role(GlobalRole(role_id="NURSE", authority_level=50,
                                        parent_role_id="HOSPITAL_STAFF"))
    admin.set_default_template("EAL_DOCTOR", "12")
"""

from __future__ import annotations

from typing import Iterable

from .claims import ClaimsPreview, ClaimsPreviewBuilder
from .config import AuthzConfig
from .exceptions import AuthzError, DanglingReferenceError, PartialUpdateError
from .interfaces import AuthorizationBackend
from .logging import get_authz_logger
from .models import (
    GlobalRole,
    Permission,
    PermissionTemplate,
    ServiceRole,
    ServiceRoleKey,
    UserTypeDefinition,
)
from .permissions.selection import PermissionTree, build_selection_tree
from .roles.resolver import AuthorityResolver, DirectRole, ResolvedAuthority
from .roles.store import (
    RoleStore,
    ensure_can_deactivate,
    ensure_can_delete,
    ensure_can_delete_template,
    ensure_can_delete_user_type,
)
from .roles.templates import (
    DefaultTemplateSwap,
    TemplateComposer,
    TemplateComposition,
    apply_default_template,
    resume_default_template,
)


class RoleAdministration:
    """Handle for the administrative console's role and permission operations.

    Args:
        backend: Remote authorization service (or ``InMemoryBackend``).
        config: Engine configuration; defaults to ``AuthzConfig()``.
    """

    def __init__(self, backend: AuthorizationBackend, config: AuthzConfig | None = None) -> None:
        self.backend = backend
        self.config = config or AuthzConfig()
        self._claims = ClaimsPreviewBuilder(self.config.claims)

    def _logger(self, operation: str, **context):
        return get_authz_logger(__name__, operation=operation, **context)

    def _rejected(self, operation: str, error: AuthzError) -> None:
        self._logger(operation).debug("Rejected before mutation: [%s] %s", error.code, error.message)

    def snapshot(self) -> RoleStore:
        """Fresh snapshot of every entity, read from the backend."""
        return RoleStore(
            global_roles=self.backend.list_global_roles(),
            service_roles=self.backend.list_service_roles(),
            templates=self.backend.list_permission_templates(),
            user_types=self.backend.list_user_types(),
            permissions=self.backend.list_permissions(),
            max_depth=self.config.max_hierarchy_depth,
        )

    # ── Global roles ────────────────────────────────────

    def create_global_role(self, role: GlobalRole) -> GlobalRole:
        try:
            self.snapshot().validate_global_role(role)
        except AuthzError as e:
            self._rejected("create_global_role", e)
            raise
        self._logger("create_global_role", role_id=role.role_id).info("Creating global role")
        return self.backend.create_global_role(role)

    def update_global_role(self, role: GlobalRole) -> GlobalRole:
        try:
            self.snapshot().validate_global_role(role, is_update=True)
        except AuthzError as e:
            self._rejected("update_global_role", e)
            raise
        self._logger("update_global_role", role_id=role.role_id).info("Updating global role")
        return self.backend.update_global_role(role)

    def set_global_role_active(self, role_id: str, active: bool) -> GlobalRole:
        role = self._require_global_role(self.snapshot(), role_id)
        if not active:
            ensure_can_deactivate(role)
        return self.backend.set_global_role_active(role_id, active)

    def delete_global_role(self, role_id: str) -> None:
        """Delete a non-system role without children. Never cascades."""
        store = self.snapshot()
        role = self._require_global_role(store, role_id)
        ensure_can_delete(role, store.global_roles)
        self._logger("delete_global_role", role_id=role_id).info("Deleting global role")
        self.backend.delete_global_role(role_id)

    @staticmethod
    def _require_global_role(store: RoleStore, role_id: str) -> GlobalRole:
        role = store.get_global_role(role_id)
        if role is None:
            raise DanglingReferenceError(f"Global role {role_id} does not exist", field="role_id")
        return role

    # ── Service roles ───────────────────────────────────

    def create_service_role(self, role: ServiceRole) -> ServiceRole:
        self.snapshot().validate_service_role(role)
        return self.backend.create_service_role(role)

    def update_service_role(self, role: ServiceRole) -> ServiceRole:
        self.snapshot().validate_service_role(role, is_update=True)
        return self.backend.update_service_role(role)

    def set_service_role_active(self, key: ServiceRoleKey | str, active: bool) -> ServiceRole:
        key = ServiceRoleKey.coerce(key)
        role = self._require_service_role(self.snapshot(), key)
        if not active:
            ensure_can_deactivate(role)
        return self.backend.set_service_role_active(key, active)

    def delete_service_role(self, key: ServiceRoleKey | str) -> None:
        key = ServiceRoleKey.coerce(key)
        ensure_can_delete(self._require_service_role(self.snapshot(), key))
        self._logger("delete_service_role").info("Deleting service role %s", key)
        self.backend.delete_service_role(key)

    @staticmethod
    def _require_service_role(store: RoleStore, key: ServiceRoleKey) -> ServiceRole:
        role = store.get_service_role(key)
        if role is None:
            raise DanglingReferenceError(f"Service role {key} does not exist", field="role_name")
        return role

    # ── Permissions ─────────────────────────────────────

    def create_permission(self, permission: Permission) -> Permission:
        self.snapshot().catalog.validate_permission(permission)
        return self.backend.create_permission(permission)

    def update_permission(self, permission: Permission) -> Permission:
        catalog = self.snapshot().catalog
        previous = catalog.get(permission.service_id, permission.permission_string)
        if previous is None:
            raise DanglingReferenceError(
                f"Permission {permission.permission_string} does not exist in {permission.service_id}",
                field="action",
            )
        if previous.is_system and not permission.is_active:
            catalog.ensure_can_deactivate(previous)
        catalog.validate_permission(permission, is_update=True)
        return self.backend.update_permission(permission)

    def set_permission_active(self, service_id: str, permission_string: str, active: bool) -> Permission:
        catalog = self.snapshot().catalog
        permission = self._require_permission(catalog.get(service_id, permission_string), service_id, permission_string)
        if not active:
            catalog.ensure_can_deactivate(permission)
        return self.backend.set_permission_active(service_id, permission_string, active)

    def delete_permission(self, service_id: str, permission_string: str) -> None:
        catalog = self.snapshot().catalog
        permission = self._require_permission(catalog.get(service_id, permission_string), service_id, permission_string)
        catalog.ensure_can_delete(permission)
        self.backend.delete_permission(service_id, permission_string)

    @staticmethod
    def _require_permission(permission: Permission | None, service_id: str, permission_string: str) -> Permission:
        if permission is None:
            raise DanglingReferenceError(
                f"Permission {permission_string} does not exist in {service_id}",
                field="permission",
            )
        return permission

    # ── Templates ───────────────────────────────────────

    def create_template(self, template: PermissionTemplate) -> PermissionTemplate:
        self.snapshot().validate_template(template)
        return self.backend.create_permission_template(template)

    def update_template(self, template: PermissionTemplate) -> PermissionTemplate:
        self.snapshot().validate_template(template, is_update=True)
        return self.backend.update_permission_template(template)

    def set_template_active(self, template_id: str | int, active: bool) -> PermissionTemplate:
        self._require_template(self.snapshot(), template_id)
        return self.backend.set_permission_template_active(str(template_id), active)

    def delete_template(self, template_id: str | int) -> None:
        store = self.snapshot()
        template = self._require_template(store, template_id)
        ensure_can_delete_template(template, store.user_types)
        self.backend.delete_permission_template(template.id)

    def compose_template(self, template_id: str | int) -> TemplateComposition:
        store = self.snapshot()
        return TemplateComposer(store).compose(self._require_template(store, template_id))

    @staticmethod
    def _require_template(store: RoleStore, template_id: str | int) -> PermissionTemplate:
        template = store.get_template(template_id)
        if template is None:
            raise DanglingReferenceError(f"Template {template_id} does not exist", field="id")
        return template

    def set_default_template(self, user_type: str, template_id: str | int) -> DefaultTemplateSwap:
        """Two-step swap: clear the old default, then set the new one.

        Raises:
            PartialUpdateError: the old default was cleared but the new one
                was not set. Pass the error to ``resume_default_template``.
        """
        store = self.snapshot()
        if store.get_user_type(user_type) is None:
            raise DanglingReferenceError(f"User type {user_type} does not exist", field="user_type")
        return apply_default_template(self.backend, user_type, template_id, templates=store.templates)

    def resume_default_template(self, error: PartialUpdateError) -> DefaultTemplateSwap:
        return resume_default_template(self.backend, error)

    # ── User types ──────────────────────────────────────

    def create_user_type(self, user_type: UserTypeDefinition) -> UserTypeDefinition:
        self.snapshot().validate_user_type(user_type)
        return self.backend.create_user_type(user_type)

    def update_user_type(self, user_type: UserTypeDefinition) -> UserTypeDefinition:
        self.snapshot().validate_user_type(user_type, is_update=True)
        return self.backend.update_user_type(user_type)

    def set_user_type_active(self, type_id: str, active: bool) -> UserTypeDefinition:
        store = self.snapshot()
        definition = self._require_user_type(store, type_id)
        store.validate_user_type(definition.model_copy(update={"is_active": active}), is_update=True)
        return self.backend.set_user_type_active(type_id, active)

    def delete_user_type(self, type_id: str) -> None:
        ensure_can_delete_user_type(self._require_user_type(self.snapshot(), type_id))
        self.backend.delete_user_type(type_id)

    @staticmethod
    def _require_user_type(store: RoleStore, type_id: str) -> UserTypeDefinition:
        definition = store.get_user_type(type_id)
        if definition is None:
            raise DanglingReferenceError(f"User type {type_id} does not exist", field="type_id")
        return definition

    # ── Read-side views ─────────────────────────────────

    def resolve(
        self,
        user_type: str,
        assigned_templates: Iterable[str | int] = (),
        direct_roles: Iterable[DirectRole] = (),
    ) -> ResolvedAuthority:
        return AuthorityResolver(self.snapshot()).resolve(user_type, assigned_templates, direct_roles)

    def preview_claims(
        self,
        subject: str,
        user_type: str,
        assigned_templates: Iterable[str | int] = (),
        direct_roles: Iterable[DirectRole] = (),
    ) -> ClaimsPreview:
        authority = self.resolve(user_type, assigned_templates, direct_roles)
        return self._claims.build(authority, subject=subject)

    def selection_tree(self, *, service_id: str | None = None, keyword: str = "") -> PermissionTree:
        return build_selection_tree(self.snapshot().catalog, service_id=service_id, keyword=keyword)


__all__ = ["RoleAdministration"]
