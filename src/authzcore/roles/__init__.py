"""Role store, hierarchy engine, template composer and authority resolver.

Defines:
- RoleStore: Immutable snapshot plus pre-mutation validation
- RoleHierarchy: Ancestor chains, descendants, related subgraph, inheritance
- TemplateComposer: Effective permissions of templates, default per user type
- AuthorityResolver: Additive union of default, template and direct grants
"""

from .hierarchy import InheritedPermission, RoleHierarchy, RoleSubgraph, walk_parent_chain
from .resolver import AuthorityResolver, Grant, ResolvedAuthority, resolve
from .store import (
    RoleStore,
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
from .templates import (
    DefaultTemplateSwap,
    TemplateComposer,
    TemplateComposition,
    apply_default_template,
    current_default,
    effective_permissions,
    resume_default_template,
    set_default_for_user_type,
)

__all__ = [
    "AuthorityResolver",
    "DefaultTemplateSwap",
    "Grant",
    "InheritedPermission",
    "ResolvedAuthority",
    "RoleHierarchy",
    "RoleStore",
    "RoleSubgraph",
    "TemplateComposer",
    "TemplateComposition",
    "apply_default_template",
    "can_deactivate",
    "can_delete",
    "current_default",
    "effective_permissions",
    "ensure_can_deactivate",
    "ensure_can_delete",
    "ensure_can_delete_template",
    "ensure_can_delete_user_type",
    "resolve",
    "resume_default_template",
    "set_default_for_user_type",
    "validate_global_role",
    "validate_service_role",
    "validate_template",
    "validate_user_type",
    "walk_parent_chain",
]
