"""Tests for authzcore.roles.store validation and snapshot helpers."""

from __future__ import annotations

import logging

import pytest

from authzcore import (
    CycleDetectedError,
    DanglingReferenceError,
    DuplicateKeyError,
    GlobalRole,
    HasDependentsError,
    HierarchyDepthError,
    InvalidFormatError,
    InvalidRangeError,
    PermissionTemplate,
    RoleStore,
    ServiceRole,
    SystemEntityProtectedError,
    UserTypeDefinition,
)
from authzcore.roles import (
    can_deactivate,
    can_delete,
    ensure_can_deactivate,
    ensure_can_delete,
    ensure_can_delete_template,
    ensure_can_delete_user_type,
    validate_global_role,
    validate_service_role,
    validate_template,
    validate_user_type,
)


class TestValidateGlobalRole:
    """Tests for validate_global_role."""

    def test_valid_new_role(self, global_roles) -> None:
        """A new child of an existing role is accepted."""
        role = GlobalRole(role_id="NURSE", authority_level=50, parent_role_id="HOSPITAL_STAFF", permissions=["chart:read"])
        validate_global_role(role, global_roles)

    def test_duplicate_role_id(self, global_roles) -> None:
        """Creating an existing role id fails."""
        role = GlobalRole(role_id="DOCTOR", authority_level=40)
        with pytest.raises(DuplicateKeyError) as exc_info:
            validate_global_role(role, global_roles)
        assert exc_info.value.field == "role_id"

    def test_update_excludes_self_from_collision(self, global_roles) -> None:
        """Updating a role does not collide with itself."""
        role = GlobalRole(role_id="DOCTOR", authority_level=35, parent_role_id="HOSPITAL_STAFF")
        validate_global_role(role, global_roles, is_update=True)

    def test_update_of_missing_role(self, global_roles) -> None:
        """Updating an unknown role is a dangling reference."""
        with pytest.raises(DanglingReferenceError):
            validate_global_role(GlobalRole(role_id="GHOST", authority_level=10), global_roles, is_update=True)

    def test_cycle_on_reparent(self, global_roles) -> None:
        """HOSPITAL_STAFF under DOCTOR while DOCTOR is under HOSPITAL_STAFF is a cycle."""
        role = GlobalRole(role_id="HOSPITAL_STAFF", authority_level=60, parent_role_id="DOCTOR")
        with pytest.raises(CycleDetectedError):
            validate_global_role(role, global_roles, is_update=True)
        with pytest.raises(CycleDetectedError):
            validate_global_role(role, global_roles)

    def test_self_parent(self, global_roles) -> None:
        """A role cannot be its own parent."""
        role = GlobalRole(role_id="DOCTOR", authority_level=40, parent_role_id="DOCTOR")
        with pytest.raises(CycleDetectedError) as exc_info:
            validate_global_role(role, global_roles, is_update=True)
        assert exc_info.value.field == "parent_role_id"

    def test_missing_parent(self, global_roles) -> None:
        """The parent must exist."""
        role = GlobalRole(role_id="NURSE", authority_level=50, parent_role_id="GONE")
        with pytest.raises(DanglingReferenceError) as exc_info:
            validate_global_role(role, global_roles)
        assert exc_info.value.field == "parent_role_id"

    def test_depth_cap(self) -> None:
        """Attaching below a chain at the cap is rejected."""
        roles = [GlobalRole(role_id="R0", authority_level=50)]
        for i in range(1, 4):
            roles.append(GlobalRole(role_id=f"R{i}", authority_level=50, parent_role_id=f"R{i - 1}"))
        role = GlobalRole(role_id="DEEP", authority_level=50, parent_role_id="R3")
        validate_global_role(role, roles, max_depth=4)
        with pytest.raises(HierarchyDepthError):
            validate_global_role(role, roles, max_depth=3)

    def test_reparent_checks_moved_subtree_depth(self) -> None:
        """Moving a subtree under a deep role checks the subtree leaves too."""
        roles = [
            GlobalRole(role_id="A", authority_level=50),
            GlobalRole(role_id="B", authority_level=50, parent_role_id="A"),
            GlobalRole(role_id="X", authority_level=50),
            GlobalRole(role_id="Y", authority_level=50, parent_role_id="X"),
        ]
        moved = GlobalRole(role_id="X", authority_level=50, parent_role_id="B")
        with pytest.raises(HierarchyDepthError):
            validate_global_role(moved, roles, is_update=True, max_depth=2)

    @pytest.mark.parametrize("level", [0, 101, -5])
    def test_authority_level_range(self, global_roles, level: int) -> None:
        """Authority level must lie in [1, 100]."""
        with pytest.raises(InvalidRangeError) as exc_info:
            validate_global_role(GlobalRole(role_id="NEW", authority_level=level), global_roles)
        assert exc_info.value.field == "authority_level"

    @pytest.mark.parametrize("role_id", ["doctor", "1DOCTOR", "DOC-TOR", ""])
    def test_role_id_format(self, global_roles, role_id: str) -> None:
        """Role ids are upper snake case."""
        with pytest.raises(InvalidFormatError):
            validate_global_role(GlobalRole(role_id=role_id, authority_level=10), global_roles)

    def test_permission_format(self, global_roles) -> None:
        """Permission strings must look like resource:action."""
        role = GlobalRole(role_id="NEW", authority_level=10, permissions=["User:Read"])
        with pytest.raises(InvalidFormatError):
            validate_global_role(role, global_roles)

    def test_wildcards_and_multi_segment_actions_allowed(self, global_roles) -> None:
        """*:* and tools:register:nszu are valid permission strings."""
        role = GlobalRole(role_id="NEW", authority_level=10, permissions=["*:*", "tools:register:nszu", "user:*"])
        validate_global_role(role, global_roles)

    def test_system_flag_is_immutable(self, global_roles) -> None:
        """is_system_role cannot be toggled on update."""
        role = GlobalRole(role_id="DOCTOR", authority_level=40, parent_role_id="HOSPITAL_STAFF", is_system_role=True)
        with pytest.raises(SystemEntityProtectedError):
            validate_global_role(role, global_roles, is_update=True)

    def test_system_role_cannot_be_deactivated(self, global_roles) -> None:
        """Deactivating a system role through update is rejected."""
        role = GlobalRole(role_id="SUPER_ADMIN", authority_level=1, is_system_role=True, is_active=False)
        with pytest.raises(SystemEntityProtectedError):
            validate_global_role(role, global_roles, is_update=True)


class TestDeletionGuards:
    """Tests for can_delete / ensure_can_delete and friends."""

    def test_system_role(self, global_roles) -> None:
        """System roles are neither deletable nor deactivatable."""
        admin = global_roles[2]
        assert can_delete(admin, global_roles) is False
        assert can_deactivate(admin) is False
        with pytest.raises(SystemEntityProtectedError):
            ensure_can_delete(admin, global_roles)
        with pytest.raises(SystemEntityProtectedError):
            ensure_can_deactivate(admin)

    def test_role_with_children(self, global_roles) -> None:
        """A parent role cannot be deleted while children exist."""
        staff = global_roles[0]
        assert can_delete(staff, global_roles) is False
        with pytest.raises(HasDependentsError) as exc_info:
            ensure_can_delete(staff, global_roles)
        assert exc_info.value.details["children"] == ["DOCTOR"]

    def test_leaf_role(self, global_roles) -> None:
        """A non-system leaf can go."""
        doctor = global_roles[1]
        assert can_delete(doctor, global_roles) is True
        ensure_can_delete(doctor, global_roles)

    def test_service_role(self, service_roles) -> None:
        """Non-system service roles can be deleted; system ones cannot."""
        assert can_delete(service_roles[0]) is True
        locked = ServiceRole(service_id="auth", role_name="OWNER", is_system_role=True)
        with pytest.raises(SystemEntityProtectedError):
            ensure_can_delete(locked)

    def test_template_referenced_as_default(self, templates, user_types) -> None:
        """A template still named as default cannot be deleted."""
        with pytest.raises(HasDependentsError) as exc_info:
            ensure_can_delete_template(templates[0], user_types)
        assert exc_info.value.details["user_types"] == ["EAL_DOCTOR"]
        ensure_can_delete_template(templates[2], user_types)

    def test_system_user_type(self, user_types) -> None:
        """System user types cannot be deleted."""
        with pytest.raises(SystemEntityProtectedError):
            ensure_can_delete_user_type(user_types[1])
        ensure_can_delete_user_type(user_types[0])


class TestOtherValidators:
    """Service roles, user types and templates."""

    def test_service_role_composite_key(self, service_roles) -> None:
        """The same role name may exist in another service."""
        validate_service_role(ServiceRole(service_id="svc-b", role_name="NURSE"), service_roles)
        with pytest.raises(DuplicateKeyError):
            validate_service_role(ServiceRole(service_id="svc-a", role_name="NURSE"), service_roles)

    def test_service_role_requires_service(self, service_roles) -> None:
        """Empty service id is a format error."""
        with pytest.raises(InvalidFormatError) as exc_info:
            validate_service_role(ServiceRole(service_id=" ", role_name="NURSE"), service_roles)
        assert exc_info.value.field == "service_id"

    @pytest.mark.parametrize("order", [0, 1000])
    def test_user_type_display_order(self, user_types, order: int) -> None:
        """Display order must lie in [1, 999]."""
        with pytest.raises(InvalidRangeError):
            validate_user_type(UserTypeDefinition(type_id="NEW_TYPE", display_order=order), user_types)

    def test_user_type_duplicate(self, user_types) -> None:
        """Type ids are unique."""
        with pytest.raises(DuplicateKeyError):
            validate_user_type(UserTypeDefinition(type_id="EAL_DOCTOR"), user_types)

    def test_template_name_unique(self, templates) -> None:
        """Template names are unique across templates."""
        with pytest.raises(DuplicateKeyError) as exc_info:
            validate_template(PermissionTemplate(id="9", name="T1"), templates)
        assert exc_info.value.field == "name"

    def test_template_name_required(self, templates) -> None:
        """Blank names are rejected."""
        with pytest.raises(InvalidFormatError):
            validate_template(PermissionTemplate(id="9", name="  "), templates)

    def test_template_update_keeps_own_name(self, templates) -> None:
        """Updating a template may keep its own name."""
        validate_template(PermissionTemplate(id="1", name="T1", description="changed"), templates, is_update=True)


class TestRoleStore:
    """Tests for the RoleStore snapshot."""

    def test_lookups(self, store: RoleStore) -> None:
        """Accessors resolve ids, keys and names."""
        assert store.get_global_role("DOCTOR").authority_level == 40
        assert store.get_service_role("svc-a:NURSE").permissions == ("chart:read",)
        assert store.get_template(1).name == "T1"
        assert store.find_template_by_name("T2").id == "2"
        assert {t.id for t in store.templates_for_user_type("EAL_DOCTOR")} == {"1", "2"}

    def test_service_ids(self, store: RoleStore) -> None:
        """Services come from the catalog and from service roles."""
        assert store.service_ids() == frozenset({"auth", "svc-a"})

    def test_with_global_role_returns_new_snapshot(self, store: RoleStore) -> None:
        """Derived snapshots leave the original untouched."""
        nurse = GlobalRole(role_id="NURSE", authority_level=50, parent_role_id="HOSPITAL_STAFF")
        updated = store.with_global_role(nurse)
        assert "NURSE" in updated.hierarchy
        assert "NURSE" not in store.hierarchy
        assert updated.hierarchy.descendants("HOSPITAL_STAFF") == frozenset({"DOCTOR", "NURSE"})
        assert "DOCTOR" not in updated.without_global_role("DOCTOR").hierarchy

    def test_validate_template_warns_on_unknown_roles(self, store: RoleStore, caplog) -> None:
        """Unknown references only warn at validation time."""
        template = PermissionTemplate(id="9", name="T9", global_role_ids=["GHOST"], service_role_ids=["x:Y"])
        with caplog.at_level(logging.WARNING, logger="authzcore.roles.store"):
            store.validate_template(template)
        assert "GHOST" in caplog.text
        assert "x:Y" in caplog.text

    def test_forest_invariant_after_accepted_changes(self, store: RoleStore) -> None:
        """Roles accepted by validation never produce a cycle."""
        candidates = [
            GlobalRole(role_id="NURSE", authority_level=50, parent_role_id="DOCTOR"),
            GlobalRole(role_id="HOSPITAL_STAFF", authority_level=60, parent_role_id="NURSE"),
            GlobalRole(role_id="INTERN", authority_level=70, parent_role_id="NURSE"),
        ]
        for role in candidates:
            exists = store.get_global_role(role.role_id) is not None
            try:
                store.validate_global_role(role, is_update=exists)
            except CycleDetectedError:
                continue
            store = store.with_global_role(role)
        assert store.hierarchy.malformed_roles() == frozenset()
        assert store.get_global_role("HOSPITAL_STAFF").parent_role_id is None
