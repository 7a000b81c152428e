"""Data model for roles, permissions, templates and user types.

These are immutable Pydantic models. They load the payloads returned by the
authorization service directly (audit fields such as ``created_at`` are
ignored) and normalize the few places where the wire format differs from
the shape the engine works with:

- ``GlobalRole.parent_role`` (nested object) → ``parent_role_id``
- ``PermissionTemplate.global_roles`` / ``service_roles`` (nested objects)
  → ``global_role_ids`` / ``service_role_ids``
- ``"service_id:ROLE_NAME"`` strings → ``ServiceRoleKey``

Permission collections are ordered, de-duplicated tuples.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

SEPARATOR = ":"


def _dedupe(values: Iterable[Any]) -> tuple[Any, ...]:
    seen: set[Any] = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return tuple(result)


def _coerce_id(value: Any) -> Any:
    # Server ids arrive as integers; the engine treats them as opaque strings.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class Permission(BaseModel):
    """A definable permission, unique per ``(service_id, resource, action)``."""

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    id: str | None = None
    service_id: str
    resource: str
    action: str
    display_name: str = ""
    description: str = ""
    category: str = ""
    is_system: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_system", "is_system_permission"),
    )
    is_active: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @property
    def permission_string(self) -> str:
        return f"{self.resource}{SEPARATOR}{self.action}"

    @property
    def key(self) -> tuple[str, str]:
        return (self.service_id, self.permission_string)


class GlobalRole(BaseModel):
    """Platform-wide role; ``parent_role_id`` links roles into a forest."""

    model_config = {"frozen": True, "extra": "ignore"}

    role_id: str
    display_name: str = ""
    description: str | None = None
    authority_level: int
    parent_role_id: str | None = None
    permissions: tuple[str, ...] = ()
    is_system_role: bool = False
    is_active: bool = True

    @model_validator(mode="before")
    @classmethod
    def flatten_parent_role(cls, data: Any) -> Any:
        """Accept the nested ``parent_role`` object returned by the service."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        parent = data.pop("parent_role", None)
        if not data.get("parent_role_id") and isinstance(parent, dict):
            data["parent_role_id"] = parent.get("role_id")
        if data.get("parent_role_id") == "":
            data["parent_role_id"] = None
        return data

    @field_validator("permissions", mode="before")
    @classmethod
    def dedupe_permissions(cls, v: Any) -> Any:
        if v is None:
            return ()
        return _dedupe(v)


class ServiceRoleKey(BaseModel):
    """Composite identity of a service role."""

    model_config = {"frozen": True}

    service_id: str
    role_name: str

    @classmethod
    def parse(cls, value: str) -> "ServiceRoleKey":
        """Parse the ``"service_id:ROLE_NAME"`` wire format."""
        service_id, sep, role_name = value.rpartition(SEPARATOR)
        if not sep or not service_id or not role_name:
            raise ValueError(f"Service role key must look like 'service:ROLE', got {value!r}")
        return cls(service_id=service_id, role_name=role_name)

    @classmethod
    def coerce(cls, value: Any) -> "ServiceRoleKey":
        """Build a key from a key, a wire string, a mapping or a pair."""
        if isinstance(value, ServiceRoleKey):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, dict):
            return cls(service_id=value["service_id"], role_name=value["role_name"])
        service_id, role_name = value
        return cls(service_id=service_id, role_name=role_name)

    def __str__(self) -> str:
        return f"{self.service_id}{SEPARATOR}{self.role_name}"


class ServiceRole(BaseModel):
    """Role scoped to one service. Flat: no parent, no inheritance."""

    model_config = {"frozen": True, "extra": "ignore"}

    service_id: str
    role_name: str
    display_name: str = ""
    description: str | None = None
    permissions: tuple[str, ...] = ()
    is_system_role: bool = False
    is_active: bool = True

    @field_validator("permissions", mode="before")
    @classmethod
    def dedupe_permissions(cls, v: Any) -> Any:
        if v is None:
            return ()
        return _dedupe(v)

    @property
    def key(self) -> ServiceRoleKey:
        return ServiceRoleKey(service_id=self.service_id, role_name=self.role_name)


class PermissionTemplate(BaseModel):
    """Named bundle of global-role and service-role references.

    A template carries no raw permissions of its own; its effective
    permissions are always recomputed from the referenced roles.
    """

    model_config = {"frozen": True, "extra": "ignore"}

    id: str
    name: str
    description: str | None = None
    category: str | None = None
    global_role_ids: tuple[str, ...] = ()
    service_role_ids: tuple[ServiceRoleKey, ...] = ()
    is_active: bool = True

    # Per-user-type default marker
    user_type: str | None = None
    is_default: bool = False

    @model_validator(mode="before")
    @classmethod
    def flatten_role_references(cls, data: Any) -> Any:
        """Accept ``global_roles`` / ``service_roles`` objects from the service."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        global_roles = data.pop("global_roles", None)
        if "global_role_ids" not in data and global_roles is not None:
            data["global_role_ids"] = [
                r["role_id"] if isinstance(r, dict) else r for r in global_roles
            ]
        service_roles = data.pop("service_roles", None)
        if "service_role_ids" not in data and service_roles is not None:
            data["service_role_ids"] = service_roles
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("global_role_ids", mode="before")
    @classmethod
    def dedupe_global_roles(cls, v: Any) -> Any:
        if v is None:
            return ()
        return _dedupe(v)

    @field_validator("service_role_ids", mode="before")
    @classmethod
    def parse_service_roles(cls, v: Any) -> Any:
        if v is None:
            return ()
        return _dedupe(ServiceRoleKey.coerce(item) for item in v)


class UserTypeDefinition(BaseModel):
    """A kind of user (``EAL_DOCTOR``, ``PLATFORM_ADMIN``) and its default templates."""

    model_config = {"frozen": True, "extra": "ignore"}

    type_id: str
    display_name: str = ""
    description: str = ""
    display_order: int = 1
    is_system_type: bool = False
    is_active: bool = True
    default_template_names: tuple[str, ...] = ()

    @field_validator("default_template_names", mode="before")
    @classmethod
    def dedupe_names(cls, v: Any) -> Any:
        if v is None:
            return ()
        return _dedupe(v)


__all__ = [
    "GlobalRole",
    "Permission",
    "PermissionTemplate",
    "ServiceRole",
    "ServiceRoleKey",
    "UserTypeDefinition",
]
