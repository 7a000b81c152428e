"""Selection tree builder: Service → Category → Permission checkbox tree.

The tree is built once from the catalog; checkbox states are never stored
on it. ``compute_node_states(tree, selected)`` derives every node state from
the set of selected leaf keys, and ``toggle_node`` returns a new selection,
so there is no incrementally patched derived state to go stale.

Node keys:
- ``service-{service_id}``
- ``category-{service_id}-{category}``
- the permission string itself for leaves (``user:read``)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator

from ..models import Permission
from .catalog import PermissionCatalog, matches_keyword
from .constants import CATEGORY_NODE_PREFIX, SERVICE_NODE_PREFIX

logger = logging.getLogger(__name__)


class CheckState(str, Enum):
    """Tri-state checkbox value."""

    NONE = "none"
    PARTIAL = "partial"
    ALL = "all"


class NodeKind(str, Enum):
    SERVICE = "service"
    CATEGORY = "category"
    PERMISSION = "permission"


@dataclass(frozen=True)
class SelectionNode:
    """One node of the permission tree.

    Leaves carry their ``Permission``; ``selectable`` is False for
    inactive permissions, which are shown but can never be checked.
    """

    id: str
    label: str
    kind: NodeKind
    children: tuple["SelectionNode", ...] = ()
    selectable: bool = True
    permission: Permission | None = field(default=None, compare=False)

    @property
    def is_leaf(self) -> bool:
        return self.kind is NodeKind.PERMISSION

    def iter_leaves(self) -> Iterator["SelectionNode"]:
        if self.is_leaf:
            yield self
            return
        for child in self.children:
            yield from child.iter_leaves()


def service_node_id(service_id: str) -> str:
    return f"{SERVICE_NODE_PREFIX}{service_id}"


def category_node_id(service_id: str, category: str) -> str:
    return f"{CATEGORY_NODE_PREFIX}{service_id}-{category}"


def is_synthetic_key(key: str) -> bool:
    return key.startswith(SERVICE_NODE_PREFIX) or key.startswith(CATEGORY_NODE_PREFIX)


def selected_permission_strings(tree_state: Iterable[str]) -> frozenset[str]:
    """Extract leaf selections, dropping synthetic ``service-*``/``category-*`` keys."""
    return frozenset(key for key in tree_state if not is_synthetic_key(key))


def _leaf_label(perm: Permission) -> str:
    label = perm.permission_string
    if perm.display_name:
        label += f" - {perm.display_name}"
    if perm.is_system:
        label += " [SYSTEM]"
    if not perm.is_active:
        label += " [INACTIVE]"
    return label


class PermissionTree:
    """Immutable checkbox tree with a leaf index per node."""

    def __init__(self, roots: Iterable[SelectionNode]) -> None:
        self.roots: tuple[SelectionNode, ...] = tuple(roots)
        self._nodes: dict[str, SelectionNode] = {}
        self._leaves: dict[str, tuple[SelectionNode, ...]] = {}
        for root in self.roots:
            self._index(root)

    def _index(self, node: SelectionNode) -> tuple[SelectionNode, ...]:
        if node.is_leaf:
            leaves: tuple[SelectionNode, ...] = (node,)
        else:
            leaves = tuple(leaf for child in node.children for leaf in self._index(child))
        self._nodes.setdefault(node.id, node)
        # The same permission string may appear under several services
        self._leaves[node.id] = self._leaves.get(node.id, ()) + leaves
        return leaves

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[SelectionNode]:
        """Depth-first, parents before children."""
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def node(self, node_id: str) -> SelectionNode:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"Unknown tree node: {node_id}") from None

    def leaves_under(self, node_id: str) -> tuple[SelectionNode, ...]:
        return self._leaves.get(node_id, ())

    def active_leaf_keys(self, node_id: str) -> frozenset[str]:
        return frozenset(leaf.id for leaf in self.leaves_under(node_id) if leaf.selectable)

    def leaf_keys(self) -> frozenset[str]:
        return frozenset(node.id for node in self if node.is_leaf)

    def active_leaf_keys_anywhere(self) -> frozenset[str]:
        """Permission strings that have at least one selectable leaf."""
        return frozenset(node.id for node in self if node.is_leaf and node.selectable)

    def compute_node_states(self, selected: Iterable[str]) -> dict[str, CheckState]:
        """Derive the state of every node from the selected leaf keys.

        A leaf is ALL when selected. A parent is ALL when every child is
        ALL, NONE when every child is NONE, PARTIAL otherwise. Inactive
        leaves count: a category whose active leaves are all checked but
        which also holds an unchecked inactive leaf is PARTIAL.

        Leaf keys are permission strings, so one key can sit under several
        services. An inactive leaf whose string also has an active leaf
        somewhere in the tree is treated as unchecked when aggregating its
        parents: the selection came through the active leaf. The state
        stored under the leaf key itself reports whether the string is
        selected.
        """
        chosen = selected_permission_strings(selected)
        reachable = self.active_leaf_keys_anywhere()
        states: dict[str, CheckState] = {}

        def visit(node: SelectionNode) -> CheckState:
            if node.is_leaf:
                picked = node.id in chosen
                states[node.id] = CheckState.ALL if picked else CheckState.NONE
                if picked and not node.selectable and node.id in reachable:
                    return CheckState.NONE
                return states[node.id]
            child_states = [visit(child) for child in node.children]
            if child_states and all(s is CheckState.ALL for s in child_states):
                state = CheckState.ALL
            elif all(s is CheckState.NONE for s in child_states):
                state = CheckState.NONE
            else:
                state = CheckState.PARTIAL
            states[node.id] = state
            return state

        for root in self.roots:
            visit(root)
        return states

    def toggle(self, selected: Iterable[str], node_id: str) -> frozenset[str]:
        """Return the selection after clicking ``node_id``.

        Leaves flip (inactive leaves never change). A service or category
        selects all of its active leaves unless they are all selected
        already, in which case it deselects them. Inactive leaves are never
        added or removed.
        """
        chosen = set(selected_permission_strings(selected))
        node = self.node(node_id)
        active = self.active_leaf_keys(node_id)

        if not active:
            logger.debug("Toggle on %s ignored: no selectable permissions", node_id)
            return frozenset(chosen)

        if node.is_leaf:
            chosen.symmetric_difference_update({node.id})
        elif active <= chosen:
            chosen -= active
        else:
            chosen |= active
        return frozenset(chosen)


def build_selection_tree(
    catalog: PermissionCatalog,
    *,
    service_id: str | None = None,
    keyword: str = "",
) -> PermissionTree:
    """Build the Service → Category → Permission tree.

    Args:
        catalog: Permission catalog snapshot.
        service_id: Restrict the tree to one service (service-role editing).
        keyword: Case-insensitive filter on permission string, display name
            and description. Empty categories and services are dropped.
    """
    needle = keyword.strip().lower()
    roots: list[SelectionNode] = []

    for sid, categories in catalog.grouped_by_service(service_id).items():
        total = sum(len(perms) for perms in categories.values())
        category_nodes: list[SelectionNode] = []
        for category, perms in categories.items():
            matched = [p for p in perms if not needle or matches_keyword(p, needle)]
            if not matched:
                continue
            leaves = tuple(
                SelectionNode(
                    id=p.permission_string,
                    label=_leaf_label(p),
                    kind=NodeKind.PERMISSION,
                    selectable=p.is_active,
                    permission=p,
                )
                for p in matched
            )
            category_nodes.append(
                SelectionNode(
                    id=category_node_id(sid, category),
                    label=f"{category} ({len(leaves)})",
                    kind=NodeKind.CATEGORY,
                    children=leaves,
                )
            )
        if category_nodes:
            roots.append(
                SelectionNode(
                    id=service_node_id(sid),
                    label=f"{sid} ({total} permissions)",
                    kind=NodeKind.SERVICE,
                    children=tuple(category_nodes),
                )
            )

    return PermissionTree(roots)


def compute_node_states(tree: PermissionTree, selected: Iterable[str]) -> dict[str, CheckState]:
    """Functional alias for ``PermissionTree.compute_node_states``."""
    return tree.compute_node_states(selected)


def toggle_node(tree: PermissionTree, selected: Iterable[str], node_id: str) -> frozenset[str]:
    """Functional alias for ``PermissionTree.toggle``."""
    return tree.toggle(selected, node_id)


__all__ = [
    "CheckState",
    "NodeKind",
    "PermissionTree",
    "SelectionNode",
    "build_selection_tree",
    "category_node_id",
    "compute_node_states",
    "is_synthetic_key",
    "selected_permission_strings",
    "service_node_id",
    "toggle_node",
]
