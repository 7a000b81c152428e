"""Configuration contract for authzcore.

This module provides Pydantic-validated configuration models for the
role/permission engine: logging switches, the hierarchy depth cap used to
defend against malformed parent chains, and the defaults rendered into the
JWT-claims preview.

Direct os.environ/os.getenv usage is FORBIDDEN outside
``load_config_from_env()``; everything else receives an ``AuthzConfig``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


DEFAULT_MAX_HIERARCHY_DEPTH = 64


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ClaimsPreviewConfig(BaseModel):
    """Values stamped into simulated JWT claims.

    The preview is an operator-facing simulation only; none of these
    settings make it a usable credential.

    Environment variables:
        AUTHZ_CLAIMS_ISSUER       — ``iss`` claim
        AUTHZ_CLAIMS_AUDIENCE     — ``aud`` / ``azp`` claim
        AUTHZ_CLAIMS_TTL_SECONDS  — ``exp - iat``
        AUTHZ_CLAIMS_SCOPE        — ``scope`` claim
    """

    model_config = {"extra": "ignore"}

    issuer: str = Field(
        default="urn:authzcore:preview",
        description="Issuer written into the preview (never a real token issuer)",
    )
    audience: str = Field(
        default="platform-management-client",
        description="Audience / authorized party of the preview",
    )
    ttl_seconds: int = Field(
        default=21600,
        ge=0,
        description="Preview lifetime in seconds (6 hours)",
    )
    scope: str = Field(
        default="openid profile email",
        description="OAuth scope string shown in the preview",
    )


class AuthzConfig(BaseModel):
    """Configuration for the role hierarchy and permission-resolution engine."""

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Hierarchy
    max_hierarchy_depth: int = Field(
        default=DEFAULT_MAX_HIERARCHY_DEPTH,
        ge=1,
        le=1024,
        description="Maximum number of parent hops before a chain is rejected",
    )

    # Claims preview
    claims: ClaimsPreviewConfig = Field(
        default_factory=ClaimsPreviewConfig,
        description="Simulated JWT claims defaults",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Accept level names in any case."""
        if isinstance(v, LogLevel):
            return v
        if not isinstance(v, str):
            raise ValueError(f"Log level must be a string, got {type(v).__name__}")
        try:
            return LogLevel(v.strip().upper())
        except ValueError:
            allowed = ", ".join(level.value for level in LogLevel)
            raise ValueError(f"Invalid log level: {v!r} (expected one of {allowed})") from None

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def load_config_from_env() -> AuthzConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - AUTHZ_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - AUTHZ_LOG_JSON: Use JSON log format (true/false, default: false)
    - AUTHZ_MAX_HIERARCHY_DEPTH: Parent-chain depth cap (default: 64)
    - AUTHZ_CLAIMS_ISSUER / AUTHZ_CLAIMS_AUDIENCE / AUTHZ_CLAIMS_TTL_SECONDS /
      AUTHZ_CLAIMS_SCOPE: claims preview defaults

    Returns:
        AuthzConfig instance with values from environment or defaults.
    """
    import os

    defaults = ClaimsPreviewConfig()
    claims = ClaimsPreviewConfig(
        issuer=os.getenv("AUTHZ_CLAIMS_ISSUER", defaults.issuer),
        audience=os.getenv("AUTHZ_CLAIMS_AUDIENCE", defaults.audience),
        ttl_seconds=int(os.getenv("AUTHZ_CLAIMS_TTL_SECONDS", str(defaults.ttl_seconds))),
        scope=os.getenv("AUTHZ_CLAIMS_SCOPE", defaults.scope),
    )

    return AuthzConfig(
        log_level=os.getenv("AUTHZ_LOG_LEVEL", "INFO"),
        log_json=os.getenv("AUTHZ_LOG_JSON", "false").lower() in ("true", "1", "yes"),
        max_hierarchy_depth=int(os.getenv("AUTHZ_MAX_HIERARCHY_DEPTH", str(DEFAULT_MAX_HIERARCHY_DEPTH))),
        claims=claims,
    )


__all__ = [
    "DEFAULT_MAX_HIERARCHY_DEPTH",
    "AuthzConfig",
    "ClaimsPreviewConfig",
    "LogLevel",
    "load_config_from_env",
]
