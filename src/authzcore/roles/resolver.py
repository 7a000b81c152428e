"""Authority resolver: the effective permission set a user would carry.

Three tiers contribute, lowest precedence first:

1. the user type's default template (rank 90)
2. explicitly assigned templates (rank 85)
3. directly assigned roles (unranked, always applies)

The model is additive only: there is no deny construct, so no tier can
remove what another granted. Resolution is a deterministic union with
provenance. Ranks are kept on each grant for display and audit, and only
decide which single template is reported as *the* applied default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Union

from ..models import PermissionTemplate, ServiceRoleKey
from ..permissions.access import has_permission, split_permission
from ..permissions.constants import SEPARATOR, GrantTier
from .store import RoleStore
from .templates import TemplateComposer

logger = logging.getLogger(__name__)

DirectRole = Union[str, ServiceRoleKey]


@dataclass(frozen=True)
class Grant:
    """One contribution to the resolved set.

    ``source`` names the template id or role that supplied the permission;
    ``via`` the role inside that source (equal to ``source`` for direct roles).
    """

    permission: str
    tier: str
    source: str
    via: str

    @property
    def rank(self) -> int | None:
        return GrantTier.RANKS[self.tier]


@dataclass(frozen=True)
class ResolvedAuthority:
    """Result of ``AuthorityResolver.resolve``."""

    user_type: str
    roles: frozenset[str] = frozenset()
    service_roles: frozenset[ServiceRoleKey] = frozenset()
    permissions: frozenset[str] = frozenset()
    service_scopes: frozenset[str] = frozenset()
    grants: tuple[Grant, ...] = ()
    applied_default_template: str | None = None
    skipped: tuple[str, ...] = field(default_factory=tuple)

    def allows(self, permission: str) -> bool:
        """Wildcard-aware check against the resolved permissions."""
        return has_permission(self.permissions, permission)

    def grants_for(self, permission: str) -> tuple[Grant, ...]:
        return tuple(g for g in self.grants if g.permission == permission)


class AuthorityResolver:
    """Computes ``ResolvedAuthority`` over a RoleStore snapshot."""

    def __init__(self, store: RoleStore) -> None:
        self.store = store
        self.composer = TemplateComposer(store)

    def default_template(self, user_type: str) -> PermissionTemplate | None:
        """The template that counts as the applied default for ``user_type``.

        An active template flagged ``is_default`` for the type wins, so a
        swap made with ``set_default_for_user_type`` takes effect even when
        the user type's ``default_template_names`` were not refreshed.
        Otherwise the first ``default_template_names`` entry naming an
        active template is used.
        """
        for template in self.store.templates_for_user_type(user_type):
            if template.is_default and template.is_active:
                return template
        definition = self.store.get_user_type(user_type)
        if definition is None:
            return None
        for name in definition.default_template_names:
            template = self.store.find_template_by_name(name)
            if template is None:
                logger.info("User type %s names missing default template %r", user_type, name)
                continue
            if template.is_active:
                return template
        return None

    def resolve(
        self,
        user_type: str,
        assigned_templates: Iterable[str | int | PermissionTemplate] = (),
        direct_roles: Iterable[DirectRole] = (),
    ) -> ResolvedAuthority:
        """Union of all three tiers.

        Args:
            user_type: ``UserTypeDefinition.type_id``.
            assigned_templates: Template ids (or templates) assigned explicitly.
            direct_roles: Global role ids, ``"service_id:ROLE"`` strings or
                ``ServiceRoleKey`` values.

        Unknown or inactive references are skipped and listed in
        ``skipped``; they never fail the resolution.
        """
        grants: list[Grant] = []
        roles: set[str] = set()
        service_roles: set[ServiceRoleKey] = set()
        skipped: list[str] = []

        default = self.default_template(user_type)
        if default is not None:
            self._add_template(default, GrantTier.USER_TYPE_DEFAULT, grants, roles, service_roles)

        for ref in assigned_templates:
            template = ref if isinstance(ref, PermissionTemplate) else self.store.get_template(ref)
            if template is None or not template.is_active:
                logger.info("Skipping assigned template %s: missing or inactive", ref)
                skipped.append(f"template:{getattr(ref, 'id', ref)}")
                continue
            self._add_template(template, GrantTier.TEMPLATE, grants, roles, service_roles)

        for ref in direct_roles:
            if not self._add_direct_role(ref, grants, roles, service_roles):
                skipped.append(f"role:{ref}")

        permissions = frozenset(g.permission for g in grants)
        return ResolvedAuthority(
            user_type=user_type,
            roles=frozenset(roles),
            service_roles=frozenset(service_roles),
            permissions=permissions,
            service_scopes=self._service_scopes(service_roles, permissions),
            grants=tuple(grants),
            applied_default_template=default.id if default is not None else None,
            skipped=tuple(skipped),
        )

    # ── Tiers ───────────────────────────────────────────

    def _add_template(
        self,
        template: PermissionTemplate,
        tier: str,
        grants: list[Grant],
        roles: set[str],
        service_roles: set[ServiceRoleKey],
    ) -> None:
        composition = self.composer.compose(template)
        for item in composition.contributions:
            grants.append(Grant(item.permission, tier, template.id, item.contributed_by))
        dropped = {
            *composition.missing_global_roles,
            *composition.malformed_global_roles,
            *composition.inactive_roles,
        }
        roles.update(rid for rid in template.global_role_ids if rid not in dropped)
        service_roles.update(
            k
            for k in template.service_role_ids
            if k not in composition.missing_service_roles and str(k) not in dropped
        )

    def _add_direct_role(
        self,
        ref: DirectRole,
        grants: list[Grant],
        roles: set[str],
        service_roles: set[ServiceRoleKey],
    ) -> bool:
        if isinstance(ref, str) and SEPARATOR not in ref:
            role = self.store.get_global_role(ref)
            if role is None or not role.is_active:
                logger.info("Skipping direct global role %s: missing or inactive", ref)
                return False
            inherited = self.store.hierarchy.try_inherited_permissions(ref)
            if inherited is None:
                return False
            for item in inherited:
                grants.append(Grant(item.permission, GrantTier.DIRECT, ref, item.contributed_by))
            roles.add(ref)
            return True

        try:
            key = ServiceRoleKey.coerce(ref)
        except (TypeError, ValueError) as e:
            logger.info("Skipping malformed direct role %r: %s", ref, e)
            return False
        service_role = self.store.get_service_role(key)
        if service_role is None or not service_role.is_active:
            logger.info("Skipping direct service role %s: missing or inactive", key)
            return False
        for perm in service_role.permissions:
            grants.append(Grant(perm, GrantTier.DIRECT, str(key), str(key)))
        service_roles.add(key)
        return True

    def _service_scopes(self, service_roles: Iterable[ServiceRoleKey], permissions: Iterable[str]) -> frozenset[str]:
        known = self.store.service_ids()
        scopes = {key.service_id for key in service_roles}
        for perm in permissions:
            resource, _ = split_permission(perm)
            if resource in known:
                scopes.add(resource)
        return frozenset(scopes)


def resolve(
    user_type: str,
    assigned_templates: Iterable[str | int | PermissionTemplate],
    direct_roles: Iterable[DirectRole],
    role_store: RoleStore,
) -> ResolvedAuthority:
    return AuthorityResolver(role_store).resolve(user_type, assigned_templates, direct_roles)


__all__ = [
    "AuthorityResolver",
    "DirectRole",
    "Grant",
    "ResolvedAuthority",
    "resolve",
]
