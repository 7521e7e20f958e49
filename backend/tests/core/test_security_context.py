"""Credential-to-Context Resolver - bearer JWT to transaction-local settings.

Invariants:
    - No credential, malformed, expired or badly signed -> {} (never raises)
    - Valid credential with subject S and tenant T -> exactly
      {"user.id": S, "user.tenant_id": T}
"""

import time

import pytest
from jose import jwt

from app.core.errors import CredentialInvalid
from app.core.security_context import (
    CredentialResolver, context_from_claims, extract_bearer_token,
)

SECRET = "resolver-secret-0123456789-0123456789"


def _token(claims: dict, secret: str = SECRET, algorithm: str = "HS256") -> str:
    return jwt.encode(claims, secret, algorithm=algorithm)


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def resolver():
    return CredentialResolver(SECRET)


def test_no_authorization_header_is_anonymous(resolver):
    assert resolver.resolve({}) == {}


def test_non_bearer_scheme_is_anonymous(resolver):
    assert resolver.resolve({"Authorization": "Basic dXNlcjpwYXNz"}) == {}


def test_empty_bearer_token_is_anonymous(resolver):
    assert resolver.resolve({"Authorization": "Bearer "}) == {}


def test_valid_token_yields_subject_and_tenant(resolver):
    token = _token({"userId": "u-1", "tenantId": "t-9", "exp": time.time() + 60})
    assert resolver.resolve(_bearer(token)) == {
        "user.id": "u-1",
        "user.tenant_id": "t-9",
    }


def test_numeric_subject_is_string_coerced(resolver):
    token = _token({"userId": 42, "tenantId": 7})
    ctx = resolver.resolve(_bearer(token))
    assert ctx == {"user.id": "42", "user.tenant_id": 7}


def test_token_without_tenant_omits_tenant_key(resolver):
    token = _token({"userId": "u-1"})
    assert resolver.resolve(_bearer(token)) == {"user.id": "u-1"}


def test_standard_sub_claim_is_accepted(resolver):
    token = _token({"sub": "u-2"})
    assert resolver.resolve(_bearer(token)) == {"user.id": "u-2"}


def test_expired_token_is_anonymous(resolver):
    token = _token({"userId": "u-1", "exp": time.time() - 60})
    assert resolver.resolve(_bearer(token)) == {}


def test_wrong_signature_is_anonymous(resolver):
    token = _token({"userId": "u-1"}, secret="another-secret-entirely-0123456789")
    assert resolver.resolve(_bearer(token)) == {}


def test_malformed_token_is_anonymous(resolver):
    assert resolver.resolve(_bearer("not.a.jwt")) == {}
    assert resolver.resolve(_bearer("garbage")) == {}


def test_disallowed_algorithm_is_anonymous(resolver):
    token = _token({"userId": "u-1"}, algorithm="HS512")
    assert resolver.resolve(_bearer(token)) == {}


def test_token_without_subject_is_anonymous(resolver):
    token = _token({"tenantId": "t-1"})
    assert resolver.resolve(_bearer(token)) == {}


def test_verify_raises_credential_invalid(resolver):
    with pytest.raises(CredentialInvalid):
        resolver.verify("garbage")


def test_header_lookup_is_case_insensitive(resolver):
    token = _token({"userId": "u-1"})
    assert resolver.resolve({"authorization": f"bearer {token}"}) == {
        "user.id": "u-1",
    }


def test_resolver_is_callable_as_settings_callback(resolver):
    token = _token({"userId": "u-1"})
    assert resolver(_bearer(token)) == {"user.id": "u-1"}


def test_each_resolution_returns_a_fresh_context(resolver):
    token = _token({"userId": "u-1"})
    first = resolver.resolve(_bearer(token))
    first["user.id"] = "tampered"
    assert resolver.resolve(_bearer(token)) == {"user.id": "u-1"}
    assert resolver.resolve({}) is not resolver.resolve({})


def test_extract_bearer_token():
    assert extract_bearer_token({"Authorization": "Bearer abc"}) == "abc"
    assert extract_bearer_token({"Authorization": "Token abc"}) is None
    assert extract_bearer_token({}) is None


def test_context_from_claims_prefers_user_id_over_sub():
    assert context_from_claims({"userId": "a", "sub": "b"}) == {"user.id": "a"}
