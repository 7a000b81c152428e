"""Permission catalog, wildcard matching and the checkbox selection tree.

Defines:
- PermissionCatalog: Flat set of definable permissions grouped by service/category
- permission_matches / has_permission: Resolution-time wildcard matching
- build_selection_tree: Service → Category → Permission tri-state tree
- Patterns / Bounds / GrantTier: Formats, numeric limits, precedence tiers
"""

from .access import has_permission, is_wildcard, permission_matches, split_permission
from .catalog import PermissionCatalog, validate_permission_string
from .constants import Bounds, GrantTier, Patterns
from .selection import (
    CheckState,
    NodeKind,
    PermissionTree,
    SelectionNode,
    build_selection_tree,
    compute_node_states,
    selected_permission_strings,
    toggle_node,
)

__all__ = [
    "Bounds",
    "CheckState",
    "GrantTier",
    "NodeKind",
    "Patterns",
    "PermissionCatalog",
    "PermissionTree",
    "SelectionNode",
    "build_selection_tree",
    "compute_node_states",
    "has_permission",
    "is_wildcard",
    "permission_matches",
    "selected_permission_strings",
    "split_permission",
    "toggle_node",
    "validate_permission_string",
]
