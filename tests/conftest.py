"""Shared fixtures: a small hospital platform snapshot."""

from __future__ import annotations

import pytest

from authzcore import (
    GlobalRole,
    InMemoryBackend,
    Permission,
    PermissionTemplate,
    RoleAdministration,
    RoleStore,
    ServiceRole,
    UserTypeDefinition,
)


@pytest.fixture
def global_roles() -> list[GlobalRole]:
    return [
        GlobalRole(
            role_id="HOSPITAL_STAFF",
            display_name="Hospital staff",
            authority_level=60,
            permissions=["patient:read"],
        ),
        GlobalRole(
            role_id="DOCTOR",
            display_name="Doctor",
            authority_level=40,
            parent_role_id="HOSPITAL_STAFF",
            permissions=["diagnosis:write"],
        ),
        GlobalRole(
            role_id="SUPER_ADMIN",
            display_name="Super admin",
            authority_level=1,
            permissions=["*:*"],
            is_system_role=True,
        ),
    ]


@pytest.fixture
def service_roles() -> list[ServiceRole]:
    return [
        ServiceRole(service_id="svc-a", role_name="NURSE", permissions=["chart:read"]),
        ServiceRole(service_id="auth", role_name="USER_ADMIN", permissions=["user:read", "user:write"]),
    ]


@pytest.fixture
def templates() -> list[PermissionTemplate]:
    return [
        PermissionTemplate(
            id="1",
            name="T1",
            global_role_ids=["HOSPITAL_STAFF"],
            user_type="EAL_DOCTOR",
            is_default=True,
        ),
        PermissionTemplate(id="2", name="T2", global_role_ids=["DOCTOR"], user_type="EAL_DOCTOR"),
        PermissionTemplate(id="3", name="T3", global_role_ids=["G1"], service_role_ids=["svc-a:NURSE"]),
    ]


@pytest.fixture
def user_types() -> list[UserTypeDefinition]:
    return [
        UserTypeDefinition(
            type_id="EAL_DOCTOR",
            display_name="Doctor (EAL)",
            display_order=10,
            default_template_names=["T1"],
        ),
        UserTypeDefinition(
            type_id="PLATFORM_ADMIN",
            display_name="Platform admin",
            display_order=1,
            is_system_type=True,
        ),
    ]


@pytest.fixture
def permissions() -> list[Permission]:
    return [
        Permission(service_id="auth", resource="user", action="read", display_name="Read users", category="user-mgmt"),
        Permission(
            service_id="auth",
            resource="user",
            action="delete",
            display_name="Delete users",
            category="user-mgmt",
            is_active=False,
        ),
        Permission(
            service_id="auth",
            resource="role",
            action="manage",
            display_name="Manage roles",
            category="roles",
            is_system=True,
        ),
        Permission(service_id="svc-a", resource="chart", action="read", display_name="Read charts", category="charts"),
    ]


@pytest.fixture
def store(global_roles, service_roles, templates, user_types, permissions) -> RoleStore:
    return RoleStore(global_roles, service_roles, templates, user_types, permissions)


@pytest.fixture
def backend(global_roles, service_roles, templates, user_types, permissions) -> InMemoryBackend:
    return InMemoryBackend(global_roles, service_roles, templates, user_types, permissions)


@pytest.fixture
def admin(backend) -> RoleAdministration:
    return RoleAdministration(backend)
