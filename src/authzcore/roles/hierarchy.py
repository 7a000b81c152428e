"""Hierarchy engine over the global-role forest.

Roles are kept in a flat ``{role_id: GlobalRole}`` map and ``parent_role_id``
is resolved by lookup, so cycle detection is a visited-set walk.

Failure semantics differ by path:
- ``ancestor_chain`` / ``inherited_permissions`` raise ``CycleDetectedError``
  (or ``HierarchyDepthError``) on malformed chains.
- ``descendants`` / ``related_subgraph`` are read paths used for
  visualization: roles with malformed chains are skipped and flagged, never
  allowed to break the whole computation.

Service roles never take part in the hierarchy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from ..config import DEFAULT_MAX_HIERARCHY_DEPTH
from ..exceptions import AuthzError, CycleDetectedError, DanglingReferenceError, HierarchyDepthError
from ..models import GlobalRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InheritedPermission:
    """A permission and the most-ancestral role that defines it."""

    permission: str
    contributed_by: str


@dataclass(frozen=True)
class RoleSubgraph:
    """Nodes and parent→child edges around one role.

    Attributes:
        role_id: The role the subgraph was computed for.
        nodes: ``{role_id} ∪ ancestors ∪ descendants``.
        edges: Direct ``(parent, child)`` pairs with both ends in ``nodes``.
        flagged: Roles skipped because their own chain is cyclic or too deep.
    """

    role_id: str
    nodes: frozenset[str]
    edges: frozenset[tuple[str, str]]
    flagged: frozenset[str] = field(default_factory=frozenset)


def walk_parent_chain(
    roles: Mapping[str, GlobalRole],
    start_id: str,
    *,
    max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH,
) -> list[GlobalRole]:
    """Follow ``parent_role_id`` from ``start_id`` upwards.

    Returns the chain leaf-first (``start_id`` first, root last). A parent
    id that is not in ``roles`` ends the walk: the last existing role is
    treated as the root.

    Raises:
        DanglingReferenceError: ``start_id`` itself is unknown.
        CycleDetectedError: a role id reappears.
        HierarchyDepthError: more than ``max_depth`` parent hops.
    """
    role = roles.get(start_id)
    if role is None:
        raise DanglingReferenceError(f"Global role {start_id} does not exist", role_id=start_id)

    chain = [role]
    seen = {start_id}
    while role.parent_role_id:
        parent_id = role.parent_role_id
        if parent_id in seen:
            path = [r.role_id for r in chain] + [parent_id]
            raise CycleDetectedError(
                f"Cycle in role hierarchy: {' -> '.join(path)}",
                field="parent_role_id",
                role_id=start_id,
                path=path,
            )
        parent = roles.get(parent_id)
        if parent is None:
            logger.info("Role %s references missing parent %s; treating it as a root", role.role_id, parent_id)
            break
        if len(chain) > max_depth:
            raise HierarchyDepthError(
                f"Role {start_id} is more than {max_depth} levels deep",
                field="parent_role_id",
                role_id=start_id,
                max_depth=max_depth,
            )
        seen.add(parent_id)
        chain.append(parent)
        role = parent
    return chain


class RoleHierarchy:
    """Pure computations over an immutable snapshot of global roles.

    Args:
        roles: All global roles of the snapshot.
        max_depth: Parent-hop cap protecting against malformed input.

    Example::

        hierarchy = RoleHierarchy(backend.list_global_roles())
        [r.role_id for r in hierarchy.ancestor_chain("DOCTOR")]
        # ['HOSPITAL_STAFF', 'DOCTOR']
    """

    def __init__(self, roles: Iterable[GlobalRole], *, max_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH) -> None:
        self._roles: dict[str, GlobalRole] = {}
        for role in roles:
            self._roles.setdefault(role.role_id, role)
        self.max_depth = max_depth

    @property
    def roles(self) -> Mapping[str, GlobalRole]:
        return self._roles

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._roles

    def get(self, role_id: str) -> GlobalRole | None:
        return self._roles.get(role_id)

    def _require(self, role_id: str) -> GlobalRole:
        role = self._roles.get(role_id)
        if role is None:
            raise DanglingReferenceError(f"Global role {role_id} does not exist", role_id=role_id)
        return role

    # ── Chains ──────────────────────────────────────────

    def ancestor_chain(self, role_id: str) -> list[GlobalRole]:
        """Root-first chain ending with ``role_id`` itself.

        Raises:
            DanglingReferenceError: unknown ``role_id``.
            CycleDetectedError: the chain loops.
            HierarchyDepthError: the chain exceeds ``max_depth`` hops.
        """
        chain = walk_parent_chain(self._roles, role_id, max_depth=self.max_depth)
        chain.reverse()
        return chain

    def ancestor_ids(self, role_id: str) -> tuple[str, ...]:
        """Root-first ids of the ancestors, excluding ``role_id``."""
        return tuple(r.role_id for r in self.ancestor_chain(role_id)[:-1])

    def _safe_chain_ids(self, role_id: str) -> tuple[str, ...] | None:
        try:
            return tuple(r.role_id for r in self.ancestor_chain(role_id))
        except (CycleDetectedError, HierarchyDepthError) as e:
            logger.debug("Skipping role %s: %s", role_id, e.message)
            return None

    def malformed_roles(self) -> frozenset[str]:
        """Roles whose parent chain is cyclic or deeper than ``max_depth``."""
        return frozenset(rid for rid in self._roles if self._safe_chain_ids(rid) is None)

    def roots(self) -> tuple[str, ...]:
        """Roles without a parent, or whose parent no longer exists."""
        return tuple(
            rid
            for rid, role in self._roles.items()
            if not role.parent_role_id or role.parent_role_id not in self._roles
        )

    def children(self, role_id: str) -> tuple[str, ...]:
        """Roles that name ``role_id`` as their direct parent."""
        return tuple(rid for rid, role in self._roles.items() if role.parent_role_id == role_id and rid != role_id)

    # ── Descendants & subgraph ──────────────────────────

    def _scan_descendants(self, role_id: str) -> tuple[frozenset[str], frozenset[str]]:
        found: set[str] = set()
        flagged: set[str] = set()
        for rid in self._roles:
            if rid == role_id:
                continue
            chain_ids = self._safe_chain_ids(rid)
            if chain_ids is None:
                flagged.add(rid)
                continue
            if role_id in chain_ids:
                found.add(rid)
        if flagged:
            logger.warning(
                "Excluded %d role(s) with malformed hierarchy from descendants of %s: %s",
                len(flagged),
                role_id,
                ", ".join(sorted(flagged)),
            )
        return frozenset(found), frozenset(flagged)

    def descendants(self, role_id: str) -> frozenset[str]:
        """All roles whose ancestor chain contains ``role_id``.

        Scans every role rather than keeping a child index; role counts are
        small. Roles with cyclic or over-deep chains are excluded.

        Raises:
            DanglingReferenceError: unknown ``role_id``.
        """
        self._require(role_id)
        found, _ = self._scan_descendants(role_id)
        return found

    def is_ancestor(self, ancestor_id: str, role_id: str) -> bool:
        """True if ``ancestor_id`` is a proper ancestor of ``role_id``. Never raises."""
        if ancestor_id == role_id or role_id not in self._roles:
            return False
        chain_ids = self._safe_chain_ids(role_id)
        return chain_ids is not None and ancestor_id in chain_ids

    def related_subgraph(self, role_id: str) -> RoleSubgraph:
        """Ancestors, descendants and the role itself, with parent→child edges.

        If the role's own chain is malformed it is flagged and contributes
        no ancestors.

        Raises:
            DanglingReferenceError: unknown ``role_id``.
        """
        self._require(role_id)
        descendants, flagged = self._scan_descendants(role_id)

        chain_ids = self._safe_chain_ids(role_id)
        if chain_ids is None:
            flagged = flagged | {role_id}
            ancestors: tuple[str, ...] = ()
        else:
            ancestors = chain_ids[:-1]

        nodes = frozenset({role_id, *ancestors, *descendants})
        edges: set[tuple[str, str]] = set()
        for rid in nodes:
            parent_id = self._roles[rid].parent_role_id
            if parent_id and parent_id in nodes and parent_id != rid:
                edges.add((parent_id, rid))
        return RoleSubgraph(role_id=role_id, nodes=nodes, edges=frozenset(edges), flagged=flagged)

    # ── Permissions ─────────────────────────────────────

    def inherited_permissions(self, role_id: str) -> list[InheritedPermission]:
        """Union of permissions along the chain, credited to the first definer.

        Roles are visited root-first, so entries are grouped by how far up
        the chain a permission originates. A permission defined by several
        roles is credited to the most-ancestral one.

        Raises:
            DanglingReferenceError: unknown ``role_id``.
            CycleDetectedError: the chain loops.
            HierarchyDepthError: the chain exceeds ``max_depth`` hops.
        """
        recorded: dict[str, InheritedPermission] = {}
        for role in self.ancestor_chain(role_id):
            for perm in role.permissions:
                if perm not in recorded:
                    recorded[perm] = InheritedPermission(permission=perm, contributed_by=role.role_id)
        return list(recorded.values())

    def effective_permissions(self, role_id: str) -> frozenset[str]:
        return frozenset(item.permission for item in self.inherited_permissions(role_id))

    def try_inherited_permissions(self, role_id: str) -> list[InheritedPermission] | None:
        """``inherited_permissions`` for composition paths: None instead of raising."""
        try:
            return self.inherited_permissions(role_id)
        except AuthzError as e:
            logger.info("Skipping global role %s: %s", role_id, e.message)
            return None


__all__ = [
    "InheritedPermission",
    "RoleHierarchy",
    "RoleSubgraph",
    "walk_parent_chain",
]
