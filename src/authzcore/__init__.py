from .models import (
    GlobalRole,
    Permission,
    PermissionTemplate,
    ServiceRole,
    ServiceRoleKey,
    UserTypeDefinition,
)
from .config import AuthzConfig, ClaimsPreviewConfig, LogLevel, load_config_from_env
from .exceptions import (
    AuthzError,
    BackendError,
    CycleDetectedError,
    DanglingReferenceError,
    DuplicateKeyError,
    HasDependentsError,
    HierarchyDepthError,
    InvalidFormatError,
    InvalidRangeError,
    PartialUpdateError,
    SystemEntityProtectedError,
)
from .logging import (
    safe_preview,
    redact_secrets,
    safe_log_value,
    AuthzFormatter,
    AuthzLoggerAdapter,
    setup_logging,
    get_authz_logger,
)
from .permissions import PermissionCatalog, PermissionTree, build_selection_tree
from .roles import (
    AuthorityResolver,
    ResolvedAuthority,
    RoleHierarchy,
    RoleStore,
    TemplateComposer,
    effective_permissions,
    resolve,
    set_default_for_user_type,
)
from .claims import ClaimsPreview, build_claims_preview
from .interfaces import AuthorizationBackend
from .memory import InMemoryBackend
from .admin import RoleAdministration

__all__ = [
    'GlobalRole',
    'Permission',
    'PermissionTemplate',
    'ServiceRole',
    'ServiceRoleKey',
    'UserTypeDefinition',
    'AuthzConfig',
    'ClaimsPreviewConfig',
    'LogLevel',
    'load_config_from_env',
    'AuthzError',
    'BackendError',
    'CycleDetectedError',
    'DanglingReferenceError',
    'DuplicateKeyError',
    'HasDependentsError',
    'HierarchyDepthError',
    'InvalidFormatError',
    'InvalidRangeError',
    'PartialUpdateError',
    'SystemEntityProtectedError',
    'safe_preview',
    'redact_secrets',
    'safe_log_value',
    'AuthzFormatter',
    'AuthzLoggerAdapter',
    'setup_logging',
    'get_authz_logger',
    'PermissionCatalog',
    'PermissionTree',
    'build_selection_tree',
    'AuthorityResolver',
    'ResolvedAuthority',
    'RoleHierarchy',
    'RoleStore',
    'TemplateComposer',
    'effective_permissions',
    'resolve',
    'set_default_for_user_type',
    'ClaimsPreview',
    'build_claims_preview',
    'AuthorizationBackend',
    'InMemoryBackend',
    'RoleAdministration',
]
