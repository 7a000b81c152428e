"""Tests for authzcore.permissions.selection."""

from __future__ import annotations

import pytest

from authzcore import Permission, PermissionCatalog, build_selection_tree
from authzcore.permissions import CheckState, NodeKind, compute_node_states, selected_permission_strings, toggle_node

AUTH = "service-auth"
USER_MGMT = "category-auth-user-mgmt"
ROLES = "category-auth-roles"


@pytest.fixture
def tree(permissions):
    return build_selection_tree(PermissionCatalog(permissions))


class TestBuildSelectionTree:
    """Tests for tree construction."""

    def test_structure(self, tree) -> None:
        """Service -> category -> permission, in catalog order."""
        assert [root.id for root in tree.roots] == [AUTH, "service-svc-a"]
        auth = tree.node(AUTH)
        assert auth.kind is NodeKind.SERVICE
        assert [c.id for c in auth.children] == [USER_MGMT, ROLES]
        assert [leaf.id for leaf in tree.node(USER_MGMT).children] == ["user:read", "user:delete"]

    def test_labels(self, tree) -> None:
        """Labels carry counts and status markers."""
        assert tree.node(AUTH).label == "auth (3 permissions)"
        assert tree.node(USER_MGMT).label == "user-mgmt (2)"
        assert tree.node("user:delete").label == "user:delete - Delete users [INACTIVE]"
        assert tree.node("role:manage").label == "role:manage - Manage roles [SYSTEM]"

    def test_inactive_leaf_not_selectable(self, tree) -> None:
        """Inactive permissions are shown but disabled."""
        assert tree.node("user:delete").selectable is False
        assert tree.node("user:read").selectable is True

    def test_service_filter(self, permissions) -> None:
        """Service-role editing shows one service only."""
        tree = build_selection_tree(PermissionCatalog(permissions), service_id="svc-a")
        assert [root.id for root in tree.roots] == ["service-svc-a"]

    def test_keyword_filter_drops_empty_branches(self, permissions) -> None:
        """Categories and services without matches disappear."""
        tree = build_selection_tree(PermissionCatalog(permissions), keyword="DELETE")
        assert [root.id for root in tree.roots] == [AUTH]
        assert [c.id for c in tree.node(AUTH).children] == [USER_MGMT]
        assert tree.leaf_keys() == frozenset({"user:delete"})

    def test_empty_catalog(self) -> None:
        """No permissions, no nodes."""
        assert build_selection_tree(PermissionCatalog()).roots == ()


class TestNodeStates:
    """Tests for tri-state computation."""

    def test_nothing_selected(self, tree) -> None:
        """Every node is NONE."""
        states = compute_node_states(tree, [])
        assert set(states.values()) == {CheckState.NONE}

    def test_category_select_all_skips_inactive(self, tree) -> None:
        """Selecting user-mgmt picks only user:read and renders partial."""
        selected = toggle_node(tree, [], USER_MGMT)
        assert selected == frozenset({"user:read"})
        states = compute_node_states(tree, selected)
        assert states["user:read"] is CheckState.ALL
        assert states["user:delete"] is CheckState.NONE
        assert states[USER_MGMT] is CheckState.PARTIAL
        assert states[AUTH] is CheckState.PARTIAL

    def test_service_all_iff_every_category_all(self, tree) -> None:
        """A service is ALL only when all of its categories are ALL."""
        states = compute_node_states(tree, ["chart:read"])
        assert states["category-svc-a-charts"] is CheckState.ALL
        assert states["service-svc-a"] is CheckState.ALL

        states = compute_node_states(tree, ["role:manage", "user:read", "user:delete"])
        assert states[ROLES] is CheckState.ALL
        assert states[USER_MGMT] is CheckState.ALL
        assert states[AUTH] is CheckState.ALL

    def test_shared_string_does_not_tick_inactive_twin(self) -> None:
        """Selecting a category never checks an inactive leaf in another service."""
        tree = build_selection_tree(
            PermissionCatalog(
                [
                    Permission(service_id="auth", resource="user", action="read", category="a"),
                    Permission(service_id="billing", resource="user", action="read", category="b", is_active=False),
                ]
            )
        )
        selected = toggle_node(tree, [], "category-auth-a")
        assert selected == frozenset({"user:read"})
        states = compute_node_states(tree, selected)
        assert states["category-auth-a"] is CheckState.ALL
        assert states["service-auth"] is CheckState.ALL
        assert states["category-billing-b"] is CheckState.NONE
        assert states["service-billing"] is CheckState.NONE

    def test_synthetic_keys_ignored(self, tree) -> None:
        """service-*/category-* keys in the selection are not permissions."""
        assert selected_permission_strings([AUTH, USER_MGMT, "user:read"]) == frozenset({"user:read"})
        states = compute_node_states(tree, [AUTH])
        assert states[AUTH] is CheckState.NONE


class TestToggle:
    """Tests for toggling nodes."""

    def test_leaf_flips(self, tree) -> None:
        """A leaf click adds then removes it."""
        once = toggle_node(tree, [], "user:read")
        assert once == frozenset({"user:read"})
        assert toggle_node(tree, once, "user:read") == frozenset()

    def test_inactive_leaf_never_changes(self, tree) -> None:
        """Clicking a disabled leaf is a no-op."""
        assert toggle_node(tree, [], "user:delete") == frozenset()
        assert toggle_node(tree, ["user:delete"], "user:delete") == frozenset({"user:delete"})

    def test_second_click_deselects_active_leaves(self, tree) -> None:
        """When all active leaves are selected the parent click clears them."""
        selected = tree.toggle([], AUTH)
        assert selected == frozenset({"user:read", "role:manage"})
        assert tree.toggle(selected, AUTH) == frozenset()

    def test_deselect_keeps_inactive_selection(self, tree) -> None:
        """An inactive leaf already selected is never removed by a parent click."""
        selected = tree.toggle(["user:read", "user:delete"], USER_MGMT)
        assert selected == frozenset({"user:delete"})

    def test_partial_parent_selects_rest(self, tree) -> None:
        """A partially selected parent selects its remaining active leaves."""
        assert tree.toggle(["role:manage"], AUTH) == frozenset({"role:manage", "user:read"})

    def test_unknown_node(self, tree) -> None:
        """Unknown node ids raise KeyError."""
        with pytest.raises(KeyError):
            tree.toggle([], "category-nope")
