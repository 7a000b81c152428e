"""Simulated JWT claims for operator display.

The preview shows what an access token for a user *would* contain after
resolution. It is never signed, carries an explicit ``simulated`` marker,
and renders with a ``[SIMULATED]`` prefix so it cannot be mistaken for an
authentic credential.
"""

from __future__ import annotations

import json
import secrets
import time
from dataclasses import dataclass
from typing import Any

from .config import ClaimsPreviewConfig
from .roles.resolver import ResolvedAuthority

SIMULATED_MARKER = "[SIMULATED]"


@dataclass(frozen=True)
class ClaimsPreview:
    """Claims of a would-be access token.

    - sub: Subject (user id or e-mail shown in the console)
    - roles: Resolved global role ids
    - permissions: Resolved permission strings (wildcards kept literal)
    - service_scopes: Services touched by the resolved grants
    - iss / aud / scope: From ``ClaimsPreviewConfig``
    - iat / exp: Issue and expiry timestamps (unix seconds)
    - jti: Random id so two previews are distinguishable in audit logs
    """

    sub: str
    user_type: str
    roles: tuple[str, ...] = ()
    service_roles: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()
    service_scopes: tuple[str, ...] = ()
    iss: str = ""
    aud: str = ""
    scope: str = ""
    iat: int = 0
    exp: int = 0
    jti: str = ""
    default_template: str | None = None

    # Always true; there is no constructor path producing a real token
    @property
    def simulated(self) -> bool:
        return True

    def is_expired(self, *, now: float | None = None) -> bool:
        t = time.time() if now is None else now
        return t >= self.exp

    def to_dict(self) -> dict[str, Any]:
        claims: dict[str, Any] = {
            "simulated": True,
            "sub": self.sub,
            "user_type": self.user_type,
            "roles": list(self.roles),
            "service_roles": list(self.service_roles),
            "permissions": list(self.permissions),
            "service_scopes": list(self.service_scopes),
            "iss": self.iss,
            "aud": self.aud,
            "azp": self.aud,
            "scope": self.scope,
            "iat": self.iat,
            "exp": self.exp,
            "jti": self.jti,
        }
        if self.default_template is not None:
            claims["default_template"] = self.default_template
        return claims

    def __str__(self) -> str:
        return f"{SIMULATED_MARKER} {json.dumps(self.to_dict(), indent=2)}"


class ClaimsPreviewBuilder:
    """Builds ``ClaimsPreview`` values from resolved authorities.

    Args:
        config: Issuer, audience, scope and lifetime of the preview.
    """

    def __init__(self, config: ClaimsPreviewConfig | None = None) -> None:
        self.config = config or ClaimsPreviewConfig()

    def build(
        self,
        authority: ResolvedAuthority,
        *,
        subject: str,
        now: float | None = None,
    ) -> ClaimsPreview:
        """Render ``authority`` as claims. Collections are sorted for stable display."""
        issued = int(time.time() if now is None else now)
        return ClaimsPreview(
            sub=subject,
            user_type=authority.user_type,
            roles=tuple(sorted(authority.roles)),
            service_roles=tuple(sorted(str(k) for k in authority.service_roles)),
            permissions=tuple(sorted(authority.permissions)),
            service_scopes=tuple(sorted(authority.service_scopes)),
            iss=self.config.issuer,
            aud=self.config.audience,
            scope=self.config.scope,
            iat=issued,
            exp=issued + self.config.ttl_seconds,
            jti=f"preview-{secrets.token_urlsafe(12)}",
            default_template=authority.applied_default_template,
        )


def build_claims_preview(
    authority: ResolvedAuthority,
    *,
    subject: str,
    config: ClaimsPreviewConfig | None = None,
    now: float | None = None,
) -> ClaimsPreview:
    return ClaimsPreviewBuilder(config).build(authority, subject=subject, now=now)


__all__ = ["SIMULATED_MARKER", "ClaimsPreview", "ClaimsPreviewBuilder", "build_claims_preview"]
