"""Port to the remote authorization service.

The engine only computes over snapshots; every persisted change goes
through an ``AuthorizationBackend``. Implementations map remote failures to
``AuthzError`` subclasses (see ``exceptions.error_from_payload``) and return
the record as stored by the service.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from .models import (
    GlobalRole,
    Permission,
    PermissionTemplate,
    ServiceRole,
    ServiceRoleKey,
    UserTypeDefinition,
)


class AuthorizationBackend(ABC):
    """Read snapshots and idempotent-by-id mutators."""

    # ── Snapshots ───────────────────────────────────────

    @abstractmethod
    def list_global_roles(self) -> Sequence[GlobalRole]:
        raise NotImplementedError

    @abstractmethod
    def list_service_roles(self) -> Sequence[ServiceRole]:
        raise NotImplementedError

    @abstractmethod
    def list_permission_templates(self) -> Sequence[PermissionTemplate]:
        raise NotImplementedError

    @abstractmethod
    def list_user_types(self) -> Sequence[UserTypeDefinition]:
        raise NotImplementedError

    @abstractmethod
    def list_permissions(self) -> Sequence[Permission]:
        raise NotImplementedError

    # ── Global roles ────────────────────────────────────

    @abstractmethod
    def create_global_role(self, role: GlobalRole) -> GlobalRole:
        raise NotImplementedError

    @abstractmethod
    def update_global_role(self, role: GlobalRole) -> GlobalRole:
        raise NotImplementedError

    @abstractmethod
    def set_global_role_active(self, role_id: str, active: bool) -> GlobalRole:
        raise NotImplementedError

    @abstractmethod
    def delete_global_role(self, role_id: str) -> None:
        raise NotImplementedError

    # ── Service roles ───────────────────────────────────

    @abstractmethod
    def create_service_role(self, role: ServiceRole) -> ServiceRole:
        raise NotImplementedError

    @abstractmethod
    def update_service_role(self, role: ServiceRole) -> ServiceRole:
        raise NotImplementedError

    @abstractmethod
    def set_service_role_active(self, key: ServiceRoleKey, active: bool) -> ServiceRole:
        raise NotImplementedError

    @abstractmethod
    def delete_service_role(self, key: ServiceRoleKey) -> None:
        raise NotImplementedError

    # ── Permissions ─────────────────────────────────────

    @abstractmethod
    def create_permission(self, permission: Permission) -> Permission:
        raise NotImplementedError

    @abstractmethod
    def update_permission(self, permission: Permission) -> Permission:
        raise NotImplementedError

    @abstractmethod
    def set_permission_active(self, service_id: str, permission_string: str, active: bool) -> Permission:
        raise NotImplementedError

    @abstractmethod
    def delete_permission(self, service_id: str, permission_string: str) -> None:
        raise NotImplementedError

    # ── Templates ───────────────────────────────────────

    @abstractmethod
    def create_permission_template(self, template: PermissionTemplate) -> PermissionTemplate:
        raise NotImplementedError

    @abstractmethod
    def update_permission_template(self, template: PermissionTemplate) -> PermissionTemplate:
        raise NotImplementedError

    @abstractmethod
    def set_permission_template_active(self, template_id: str, active: bool) -> PermissionTemplate:
        raise NotImplementedError

    @abstractmethod
    def delete_permission_template(self, template_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_template_default(self, template_id: str, user_type: str, is_default: bool) -> PermissionTemplate:
        """Set or clear the per-user-type default flag of one template.

        A single remote write. Keeping at most one default per user type is
        the caller's job (clear the old default first).
        """
        raise NotImplementedError

    # ── User types ──────────────────────────────────────

    @abstractmethod
    def create_user_type(self, user_type: UserTypeDefinition) -> UserTypeDefinition:
        raise NotImplementedError

    @abstractmethod
    def update_user_type(self, user_type: UserTypeDefinition) -> UserTypeDefinition:
        raise NotImplementedError

    @abstractmethod
    def set_user_type_active(self, type_id: str, active: bool) -> UserTypeDefinition:
        raise NotImplementedError

    @abstractmethod
    def delete_user_type(self, type_id: str) -> None:
        raise NotImplementedError


__all__ = ["AuthorizationBackend"]
