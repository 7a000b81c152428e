"""Tests for authzcore.roles.resolver."""

from __future__ import annotations

import pytest

from authzcore import (
    AuthorityResolver,
    GlobalRole,
    PermissionTemplate,
    RoleStore,
    ServiceRoleKey,
    resolve,
    set_default_for_user_type,
)
from authzcore.permissions import GrantTier


class TestDefaultTemplate:
    """Tests for picking the applied default."""

    def test_from_user_type_names(self, store: RoleStore) -> None:
        """The flagged template named by the user type is applied."""
        assert AuthorityResolver(store).default_template("EAL_DOCTOR").name == "T1"

    def test_no_default(self, store: RoleStore) -> None:
        """A type without defaults gets none."""
        assert AuthorityResolver(store).default_template("PLATFORM_ADMIN") is None

    def test_inactive_default_is_ignored(self, store: RoleStore) -> None:
        """An inactive default template is not applied."""
        inactive = store.get_template("1").model_copy(update={"is_active": False})
        assert AuthorityResolver(store.with_templates([inactive])).default_template("EAL_DOCTOR") is None

    def test_falls_back_to_default_flag(self, store: RoleStore) -> None:
        """Without names the is_default flag decides."""
        flagged = PermissionTemplate(id="7", name="T7", user_type="NURSE_TYPE", is_default=True)
        assert AuthorityResolver(store.with_templates([flagged])).default_template("NURSE_TYPE").id == "7"

    def test_local_swap_takes_effect(self, store: RoleStore) -> None:
        """After set_default_for_user_type the flagged template is applied."""
        swapped = set_default_for_user_type(store.templates, "EAL_DOCTOR", "2")
        resolver = AuthorityResolver(store.with_templates(swapped))
        assert resolver.default_template("EAL_DOCTOR").id == "2"
        assert resolver.resolve("EAL_DOCTOR").applied_default_template == "2"

    def test_names_used_without_flag(self, store: RoleStore) -> None:
        """default_template_names decide when no template is flagged."""
        unflagged = store.get_template("1").model_copy(update={"is_default": False})
        assert AuthorityResolver(store.with_templates([unflagged])).default_template("EAL_DOCTOR").name == "T1"


class TestResolve:
    """Tests for resolve."""

    def test_default_only(self, store: RoleStore) -> None:
        """A bare user type carries its default template."""
        result = resolve("EAL_DOCTOR", [], [], store)
        assert result.permissions == frozenset({"patient:read"})
        assert result.roles == frozenset({"HOSPITAL_STAFF"})
        assert result.applied_default_template == "1"
        assert {g.tier for g in result.grants} == {GrantTier.USER_TYPE_DEFAULT}

    def test_union_of_tiers(self, store: RoleStore) -> None:
        """Default, templates and direct roles are unioned."""
        result = resolve("EAL_DOCTOR", ["2", "3"], ["auth:USER_ADMIN"], store)
        assert result.permissions == frozenset(
            {"patient:read", "diagnosis:write", "chart:read", "user:read", "user:write"}
        )
        assert result.roles == frozenset({"HOSPITAL_STAFF", "DOCTOR"})
        assert result.service_roles == frozenset(
            {ServiceRoleKey(service_id="svc-a", role_name="NURSE"), ServiceRoleKey(service_id="auth", role_name="USER_ADMIN")}
        )
        assert result.service_scopes == frozenset({"svc-a", "auth"})

    def test_ranks_never_remove_grants(self, store: RoleStore) -> None:
        """The same permission from several tiers keeps every grant."""
        result = resolve("EAL_DOCTOR", ["1"], ["HOSPITAL_STAFF"], store)
        tiers = {g.tier for g in result.grants_for("patient:read")}
        assert tiers == {GrantTier.USER_TYPE_DEFAULT, GrantTier.TEMPLATE, GrantTier.DIRECT}
        assert result.permissions == frozenset({"patient:read"})

    def test_grant_ranks(self, store: RoleStore) -> None:
        """Grants carry the documented ranks."""
        result = resolve("EAL_DOCTOR", ["2"], ["DOCTOR"], store)
        ranks = {g.tier: g.rank for g in result.grants}
        assert ranks == {GrantTier.USER_TYPE_DEFAULT: 90, GrantTier.TEMPLATE: 85, GrantTier.DIRECT: None}

    def test_direct_role_provenance(self, store: RoleStore) -> None:
        """Direct roles credit the ancestor that defines a permission."""
        result = resolve("PLATFORM_ADMIN", [], ["DOCTOR"], store)
        by_permission = {g.permission: g for g in result.grants}
        assert by_permission["patient:read"].source == "DOCTOR"
        assert by_permission["patient:read"].via == "HOSPITAL_STAFF"

    def test_unknown_and_inactive_are_skipped(self, store: RoleStore) -> None:
        """Stale references degrade the result, they never fail it."""
        retired = GlobalRole(role_id="RETIRED", authority_level=50, permissions=["old:read"], is_active=False)
        snapshot = store.with_global_role(retired)
        result = resolve("EAL_DOCTOR", ["404"], ["GHOST", "RETIRED", "svc-z:NOBODY"], snapshot)
        assert result.permissions == frozenset({"patient:read"})
        assert set(result.skipped) == {"template:404", "role:GHOST", "role:RETIRED", "role:svc-z:NOBODY"}

    @pytest.mark.parametrize("ref", ["svc-a:", ":NURSE"])
    def test_malformed_service_role_is_skipped(self, store: RoleStore, ref: str) -> None:
        """A broken service role reference is skipped like a missing one."""
        result = resolve("EAL_DOCTOR", [], [ref, "DOCTOR"], store)
        assert result.permissions == frozenset({"patient:read", "diagnosis:write"})
        assert result.skipped == (f"role:{ref}",)

    def test_template_objects_accepted(self, store: RoleStore) -> None:
        """Unsaved template objects can be previewed."""
        draft = PermissionTemplate(id="", name="draft", service_role_ids=["svc-a:NURSE"])
        assert "chart:read" in resolve("PLATFORM_ADMIN", [draft], [], store).permissions

    def test_monotonic(self, store: RoleStore) -> None:
        """Adding assignments only grows the permission set."""
        templates: list[str] = []
        roles: list[str] = []
        previous = resolve("EAL_DOCTOR", templates, roles, store).permissions
        for kind, ref in [("t", "3"), ("r", "DOCTOR"), ("t", "404"), ("r", "auth:USER_ADMIN"), ("r", "SUPER_ADMIN")]:
            (templates if kind == "t" else roles).append(ref)
            current = resolve("EAL_DOCTOR", templates, roles, store).permissions
            assert previous <= current
            previous = current

    def test_service_scope_from_permission_prefix(self, store: RoleStore) -> None:
        """A permission whose resource names a known service adds that scope."""
        role = GlobalRole(role_id="AUTH_READER", authority_level=50, permissions=["auth:read"])
        result = resolve("PLATFORM_ADMIN", [], ["AUTH_READER"], store.with_global_role(role))
        assert result.service_scopes == frozenset({"auth"})

    @pytest.mark.parametrize(
        ("required", "expected"),
        [("user:delete", True), ("billing:write", True), ("anything:at:all", True)],
    )
    def test_allows_uses_wildcards(self, store: RoleStore, required: str, expected: bool) -> None:
        """SUPER_ADMIN's *:* covers everything without being expanded."""
        result = resolve("PLATFORM_ADMIN", [], ["SUPER_ADMIN"], store)
        assert result.permissions == frozenset({"*:*"})
        assert result.allows(required) is expected

    def test_allows_exact_only(self, store: RoleStore) -> None:
        """Without wildcards only exact strings match."""
        result = resolve("EAL_DOCTOR", [], [], store)
        assert result.allows("patient:read") is True
        assert result.allows("patient:write") is False
