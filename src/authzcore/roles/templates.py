"""Template composer: effective permissions and the per-user-type default.

A template's permissions are never stored; they are recomputed from the
referenced roles on every read. Missing references are skipped, so an
operator always sees a true lower bound rather than an error.

The default swap is two writes against the remote service (clear the old
default, then set the new one). If the second write fails after the first
succeeded, ``PartialUpdateError`` says which half is done so only the
missing half is retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from ..exceptions import AuthzError, DanglingReferenceError, PartialUpdateError
from ..logging import get_authz_logger
from ..models import PermissionTemplate, ServiceRoleKey
from .hierarchy import InheritedPermission
from .store import RoleStore

if TYPE_CHECKING:
    from ..interfaces import AuthorizationBackend

logger = logging.getLogger(__name__)

STEP_CLEAR_DEFAULT = "clear_default"
STEP_SET_DEFAULT = "set_default"


@dataclass(frozen=True)
class TemplateComposition:
    """Effective permissions of a template plus what had to be skipped.

    ``contributions`` credits each permission to the first role that
    supplied it: a global role id, or ``service_id:ROLE_NAME``. Inactive
    roles contribute nothing and are listed in ``inactive_roles``.
    """

    template_id: str
    permissions: frozenset[str]
    contributions: tuple[InheritedPermission, ...] = ()
    missing_global_roles: tuple[str, ...] = ()
    missing_service_roles: tuple[ServiceRoleKey, ...] = ()
    malformed_global_roles: tuple[str, ...] = ()
    inactive_roles: tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(
            self.missing_global_roles
            or self.missing_service_roles
            or self.malformed_global_roles
            or self.inactive_roles
        )


class TemplateComposer:
    """Dereferences template role references through a RoleStore snapshot."""

    def __init__(self, store: RoleStore) -> None:
        self.store = store

    def compose(self, template: PermissionTemplate) -> TemplateComposition:
        recorded: dict[str, InheritedPermission] = {}
        missing_global: list[str] = []
        malformed_global: list[str] = []
        missing_service: list[ServiceRoleKey] = []
        inactive: list[str] = []

        for role_id in template.global_role_ids:
            role = self.store.get_global_role(role_id)
            if role is None:
                missing_global.append(role_id)
                continue
            if not role.is_active:
                inactive.append(role_id)
                continue
            inherited = self.store.hierarchy.try_inherited_permissions(role_id)
            if inherited is None:
                malformed_global.append(role_id)
                continue
            for item in inherited:
                recorded.setdefault(item.permission, item)

        for key in template.service_role_ids:
            service_role = self.store.get_service_role(key)
            if service_role is None:
                missing_service.append(key)
                continue
            if not service_role.is_active:
                inactive.append(str(key))
                continue
            for perm in service_role.permissions:
                recorded.setdefault(perm, InheritedPermission(permission=perm, contributed_by=str(key)))

        if missing_global or missing_service:
            logger.info(
                "Template %s has dangling references (global=%s, service=%s); skipped",
                template.id,
                missing_global,
                [str(k) for k in missing_service],
            )
        if inactive:
            logger.info("Template %s references inactive roles %s; skipped", template.id, inactive)

        return TemplateComposition(
            template_id=template.id,
            permissions=frozenset(recorded),
            contributions=tuple(recorded.values()),
            missing_global_roles=tuple(missing_global),
            missing_service_roles=tuple(missing_service),
            malformed_global_roles=tuple(malformed_global),
            inactive_roles=tuple(inactive),
        )

    def effective_permissions(self, template: PermissionTemplate) -> frozenset[str]:
        return self.compose(template).permissions


def effective_permissions(template: PermissionTemplate, role_store: RoleStore) -> frozenset[str]:
    """Union of inherited global-role permissions and raw service-role permissions."""
    return TemplateComposer(role_store).effective_permissions(template)


# ── Default template per user type ──────────────────────


def current_default(
    templates: Iterable[PermissionTemplate],
    user_type: str,
) -> PermissionTemplate | None:
    for template in templates:
        if template.user_type == user_type and template.is_default:
            return template
    return None


def set_default_for_user_type(
    templates: Iterable[PermissionTemplate],
    user_type: str,
    template_id: str | int,
) -> tuple[PermissionTemplate, ...]:
    """Return the templates with ``template_id`` as the only default for ``user_type``.

    Any other template holding the default for that type is cleared. Other
    user types are untouched.

    Raises:
        DanglingReferenceError: ``template_id`` is not among ``templates``.
    """
    template_id = str(template_id)
    templates = tuple(templates)
    if not any(t.id == template_id for t in templates):
        raise DanglingReferenceError(f"Template {template_id} does not exist", field="template_id")

    result = []
    for template in templates:
        if template.id == template_id:
            template = template.model_copy(update={"user_type": user_type, "is_default": True})
        elif template.user_type == user_type and template.is_default:
            template = template.model_copy(update={"is_default": False})
        result.append(template)
    return tuple(result)


@dataclass(frozen=True)
class DefaultTemplateSwap:
    """Outcome of a remote default swap."""

    user_type: str
    template_id: str
    previous_template_id: str | None = None
    completed_steps: tuple[str, ...] = field(default_factory=tuple)


def apply_default_template(
    backend: "AuthorizationBackend",
    user_type: str,
    template_id: str | int,
    *,
    templates: Iterable[PermissionTemplate] | None = None,
) -> DefaultTemplateSwap:
    """Make ``template_id`` the default for ``user_type`` on the remote service.

    Clears the current default first, then sets the new one.

    Raises:
        DanglingReferenceError: ``template_id`` is unknown.
        AuthzError: the clear step failed (nothing changed).
        PartialUpdateError: the clear succeeded but the set failed.
    """
    template_id = str(template_id)
    log = get_authz_logger(__name__, operation="set_default_template", user_type=user_type, template_id=template_id)
    snapshot = tuple(backend.list_permission_templates() if templates is None else templates)
    if not any(t.id == template_id for t in snapshot):
        raise DanglingReferenceError(f"Template {template_id} does not exist", field="template_id")

    previous = current_default(snapshot, user_type)
    if previous is not None and previous.id == template_id:
        log.debug("Template is already the default")
        return DefaultTemplateSwap(user_type=user_type, template_id=template_id, previous_template_id=template_id)

    steps: list[str] = []
    if previous is not None:
        log.info("Clearing previous default", template_id=previous.id)
        backend.set_template_default(previous.id, user_type, False)
        steps.append(STEP_CLEAR_DEFAULT)

    try:
        backend.set_template_default(template_id, user_type, True)
    except AuthzError as e:
        if not steps:
            raise
        log.error("Default cleared but new default not set: %s", e.message)
        raise PartialUpdateError(
            f"Cleared default of {user_type} but could not set template {template_id}: {e.message}",
            completed_step=STEP_CLEAR_DEFAULT,
            pending_step=STEP_SET_DEFAULT,
            user_type=user_type,
            cleared_template_id=previous.id if previous else None,
            target_template_id=template_id,
            cause_code=e.code,
        ) from e
    steps.append(STEP_SET_DEFAULT)

    return DefaultTemplateSwap(
        user_type=user_type,
        template_id=template_id,
        previous_template_id=previous.id if previous else None,
        completed_steps=tuple(steps),
    )


def resume_default_template(backend: "AuthorizationBackend", error: PartialUpdateError) -> DefaultTemplateSwap:
    """Retry only the pending half of a partial default swap.

    The clear step is never repeated, so a default that was never set
    cannot be cleared twice.
    """
    if error.pending_step != STEP_SET_DEFAULT:
        raise ValueError(f"Nothing to resume for pending step {error.pending_step!r}")
    user_type = error.details["user_type"]
    template_id = error.details["target_template_id"]
    backend.set_template_default(template_id, user_type, True)
    get_authz_logger(__name__, operation="set_default_template").info(
        "Resumed default swap", user_type=user_type, template_id=template_id
    )
    return DefaultTemplateSwap(
        user_type=user_type,
        template_id=template_id,
        previous_template_id=error.details.get("cleared_template_id"),
        completed_steps=(STEP_CLEAR_DEFAULT, STEP_SET_DEFAULT),
    )


__all__ = [
    "STEP_CLEAR_DEFAULT",
    "STEP_SET_DEFAULT",
    "DefaultTemplateSwap",
    "TemplateComposer",
    "TemplateComposition",
    "apply_default_template",
    "current_default",
    "effective_permissions",
    "resume_default_template",
    "set_default_for_user_type",
]
