"""Unified exception hierarchy for authzcore.

All errors inherit from AuthzError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for mapping structured remote error bodies back to classes
- Helpers to serialize an error into a ``{code, message, details}`` payload

Usage:
    from authzcore.exceptions import (
        AuthzError,
        CycleDetectedError,
        DuplicateKeyError,
    )

Validation failures carry a ``field`` so a form can show the message inline
next to the offending input.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, TypeVar, cast

__all__ = [
    # Base hierarchy
    "AuthzError",
    "DuplicateKeyError",
    "CycleDetectedError",
    "InvalidRangeError",
    "HierarchyDepthError",
    "InvalidFormatError",
    "DanglingReferenceError",
    "SystemEntityProtectedError",
    "HasDependentsError",
    "PartialUpdateError",
    "BackendError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    "error_from_payload",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class AuthzError(Exception):
    """Base exception for all authorization-model errors.

    Attributes:
        code: Stable error code string (e.g. "CYCLE_DETECTED").
        message: Human-readable error description.
        field: Form field the error is scoped to, if any.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        *,
        field: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.field = field
        self.details = kwargs
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the structured error body used at the service boundary."""
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }
        if self.field:
            payload["field"] = self.field
        return payload


class DuplicateKeyError(AuthzError):
    """A role id, composite service-role key or permission key already exists."""

    code: str = "DUPLICATE_KEY"
    message: str = "An entity with this key already exists"


class CycleDetectedError(AuthzError):
    """Following parent references would revisit a role."""

    code: str = "CYCLE_DETECTED"
    message: str = "Role hierarchy contains a cycle"


class InvalidRangeError(AuthzError):
    """A numeric value is outside its allowed bounds."""

    code: str = "INVALID_RANGE"
    message: str = "Value is out of range"


class HierarchyDepthError(InvalidRangeError):
    """A parent chain is longer than the configured depth cap."""

    code: str = "HIERARCHY_DEPTH_EXCEEDED"
    message: str = "Role hierarchy is too deep"


class InvalidFormatError(AuthzError):
    """An identifier or permission string does not match its required format."""

    code: str = "INVALID_FORMAT"
    message: str = "Value has an invalid format"


class DanglingReferenceError(AuthzError):
    """A reference points at a role or template that does not exist."""

    code: str = "DANGLING_REFERENCE"
    message: str = "Referenced entity does not exist"


class SystemEntityProtectedError(AuthzError):
    """Attempted delete, deactivate or protected-field change on a system entity."""

    code: str = "SYSTEM_ENTITY_PROTECTED"
    message: str = "System entities cannot be modified this way"


class HasDependentsError(AuthzError):
    """An entity cannot be removed while other entities still depend on it."""

    code: str = "HAS_DEPENDENTS"
    message: str = "Entity is still referenced by other entities"


class PartialUpdateError(AuthzError):
    """A multi-step remote update stopped halfway.

    ``details`` always contains ``completed_step`` and ``pending_step`` so the
    caller can retry only the missing half.
    """

    code: str = "PARTIAL_UPDATE"
    message: str = "Update was only partially applied"

    @property
    def completed_step(self) -> str | None:
        return self.details.get("completed_step")

    @property
    def pending_step(self) -> str | None:
        return self.details.get("pending_step")


class BackendError(AuthzError):
    """The remote authorization service rejected or failed a request."""

    code: str = "BACKEND_ERROR"
    message: str = "Authorization service request failed"


# ---- Error Registry ---------------------------------------------------------

_E = TypeVar("_E", bound=type[AuthzError])


class ErrorRegistry:
    """Registry mapping stable error codes to exception classes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[AuthzError]] = {}

    def register(self, code: str, error_cls: type[AuthzError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[AuthzError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[AuthzError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("QUOTA_EXCEEDED")
        class QuotaExceededError(AuthzError):
            code = "QUOTA_EXCEEDED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


# Register base errors
error_registry.register("INTERNAL_ERROR", AuthzError)
error_registry.register("DUPLICATE_KEY", DuplicateKeyError)
error_registry.register("CYCLE_DETECTED", CycleDetectedError)
error_registry.register("INVALID_RANGE", InvalidRangeError)
error_registry.register("HIERARCHY_DEPTH_EXCEEDED", HierarchyDepthError)
error_registry.register("INVALID_FORMAT", InvalidFormatError)
error_registry.register("DANGLING_REFERENCE", DanglingReferenceError)
error_registry.register("SYSTEM_ENTITY_PROTECTED", SystemEntityProtectedError)
error_registry.register("HAS_DEPENDENTS", HasDependentsError)
error_registry.register("PARTIAL_UPDATE", PartialUpdateError)
error_registry.register("BACKEND_ERROR", BackendError)


def error_from_payload(payload: Mapping[str, Any]) -> AuthzError:
    """Rebuild an AuthzError from a structured ``{code, message, details}`` body.

    Unknown codes become a BackendError that keeps the original code, so
    nothing the remote service reports is silently dropped. ``code``,
    ``message`` and ``field`` found inside ``details`` are lifted out and
    only used when the top level does not carry them.
    """
    details = dict(payload.get("details") or {})
    nested = {key: details.pop(key) for key in ("code", "message", "field") if key in details}
    code = str(payload.get("code") or nested.get("code") or BackendError.code)
    message = payload.get("message") or nested.get("message")
    field = payload.get("field") or nested.get("field")

    error_cls = error_registry.get(code)
    if error_cls is None:
        logger.debug("Unregistered error code from backend: %s", code)
        return BackendError(message, code=code, field=field, **details)
    return error_cls(message, field=field, **details)
