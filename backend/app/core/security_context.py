"""Credential-to-Context Resolver - bearer JWT to transaction-local settings.

Invariants:
    - resolve() is total: it returns a SecurityContext and never raises
    - No header, malformed, badly signed, expired or subject-less token -> {}
    - Valid token -> {"user.id": str(subject)} plus "user.tenant_id" if present
    - Every call returns a fresh dict (never shared between requests)

Design Decisions:
    - Fail-open to anonymous: the database default role applies when no
      context is set, so row-level policies still restrict the request
    - python-jose for verification; exp is checked by jwt.decode()
"""

import logging
from collections.abc import Mapping

from jose import jwt
from jose.exceptions import JOSEError

from app.core.domain_types import (
    SecurityContext, SUBJECT_SETTING, TENANT_SETTING,
)
from app.core.errors import CredentialInvalid

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"
SUBJECT_CLAIMS = ("userId", "sub")
TENANT_CLAIM = "tenantId"


class CredentialResolver:
    """Resolves request headers into a per-request SecurityContext."""

    def __init__(self, secret: str, algorithms: tuple[str, ...] = ("HS256",)):
        self._secret = secret
        self._algorithms = list(algorithms)

    def __call__(self, headers: Mapping[str, str]) -> SecurityContext:
        return self.resolve(headers)

    def resolve(self, headers: Mapping[str, str]) -> SecurityContext:
        token = extract_bearer_token(headers)
        if token is None:
            return {}
        try:
            claims = self.verify(token)
        except CredentialInvalid as e:
            logger.debug(
                f"Anonymous fallback: {e.reason}",
                extra={"error_code": e.code},
            )
            return {}
        return context_from_claims(claims)

    def verify(self, token: str) -> dict:
        """Decode and verify ``token``. Raises CredentialInvalid."""
        try:
            claims = jwt.decode(token, self._secret, algorithms=self._algorithms)
        except JOSEError as e:
            raise CredentialInvalid(str(e) or type(e).__name__) from e
        if not isinstance(claims, dict) or _subject(claims) is None:
            raise CredentialInvalid("token has no subject claim")
        return claims


def extract_bearer_token(headers: Mapping[str, str]) -> str | None:
    header = _get_header(headers, "authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != BEARER_SCHEME or not token.strip():
        return None
    return token.strip()


def context_from_claims(claims: Mapping) -> SecurityContext:
    context: SecurityContext = {SUBJECT_SETTING: str(_subject(claims))}
    tenant = claims.get(TENANT_CLAIM)
    if tenant is not None:
        context[TENANT_SETTING] = tenant
    return context


def _subject(claims: Mapping):
    for name in SUBJECT_CLAIMS:
        value = claims.get(name)
        if value is not None and value != "":
            return value
    return None


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    # Starlette Headers are case-insensitive already; plain dicts are not
    value = headers.get(name)
    if value is not None:
        return value
    for key, val in headers.items():
        if key.lower() == name:
            return val
    return None
