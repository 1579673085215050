"""
Unit tests for access/refresh token issuance and verification.
"""
from datetime import timedelta

import pytest
from bson import ObjectId
from jose import jwt

from mediahub.core.errors import AppError, ErrorKind
from mediahub.core.tokens import ACCESS, REFRESH, TokenConfig, TokenIssuer


@pytest.fixture
def identity():
    return {
        "_id": ObjectId(),
        "username": "alice",
        "email": "alice@example.com",
        "full_name": "Alice Liddell",
        "credential_hash": "$2b$04$should-never-appear-in-a-token",
    }


def _kind_of(excinfo) -> ErrorKind:
    return excinfo.value.kind


@pytest.mark.unit
class TestTokenConfig:
    def test_rejects_shared_secret(self):
        with pytest.raises(ValueError):
            TokenConfig("same", "same", timedelta(minutes=1), timedelta(days=1))

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            TokenConfig("a", "b", timedelta(0), timedelta(days=1))


@pytest.mark.unit
class TestTokenIssuer:
    """Issue / verify round trips and failure kinds."""

    def test_access_token_carries_profile_claims(self, issuer, identity):
        claims = issuer.verify(issuer.issue_access(identity), ACCESS)
        assert claims["sub"] == str(identity["_id"])
        assert claims["username"] == "alice"
        assert claims["email"] == "alice@example.com"
        assert claims["full_name"] == "Alice Liddell"
        assert claims["type"] == ACCESS
        assert "credential_hash" not in claims

    def test_refresh_token_carries_subject_only(self, issuer, identity):
        claims = issuer.verify(issuer.issue_refresh(identity), REFRESH)
        assert claims["sub"] == str(identity["_id"])
        assert set(claims) == {"sub", "type", "iat", "exp", "jti"}

    def test_refresh_tokens_are_unique(self, issuer, identity):
        assert issuer.issue_refresh(identity) != issuer.issue_refresh(identity)

    def test_access_token_expires_after_ttl(self, issuer, clock, identity):
        token = issuer.issue_access(identity)
        clock.advance(minutes=14, seconds=59)
        assert issuer.verify(token, ACCESS)["sub"] == str(identity["_id"])
        clock.advance(seconds=1)
        with pytest.raises(AppError) as exc:
            issuer.verify(token, ACCESS)
        assert _kind_of(exc) is ErrorKind.TOKEN_EXPIRED

    def test_refresh_token_expires_after_ttl(self, issuer, clock, identity):
        token = issuer.issue_refresh(identity)
        clock.advance(days=10)
        with pytest.raises(AppError) as exc:
            issuer.verify(token, REFRESH)
        assert _kind_of(exc) is ErrorKind.TOKEN_EXPIRED

    def test_refresh_presented_as_access_is_kind_mismatch(self, issuer, identity):
        with pytest.raises(AppError) as exc:
            issuer.verify(issuer.issue_refresh(identity), ACCESS)
        assert _kind_of(exc) is ErrorKind.TOKEN_KIND_MISMATCH

    def test_access_presented_as_refresh_is_kind_mismatch(self, issuer, identity):
        with pytest.raises(AppError) as exc:
            issuer.verify(issuer.issue_access(identity), REFRESH)
        assert _kind_of(exc) is ErrorKind.TOKEN_KIND_MISMATCH

    def test_type_claim_forged_under_right_secret_is_mismatch(self, issuer, token_config, identity):
        forged = jwt.encode(
            {"sub": str(identity["_id"]), "type": ACCESS, "iat": 0, "exp": 4102444800, "jti": "x"},
            token_config.refresh_secret,
            algorithm="HS256",
        )
        with pytest.raises(AppError) as exc:
            issuer.verify(forged, REFRESH)
        assert _kind_of(exc) is ErrorKind.TOKEN_KIND_MISMATCH

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_malformed_token_is_invalid(self, issuer, token):
        with pytest.raises(AppError) as exc:
            issuer.verify(token, ACCESS)
        assert _kind_of(exc) is ErrorKind.TOKEN_INVALID

    def test_foreign_secret_is_invalid(self, issuer, identity, clock):
        other = TokenIssuer(
            TokenConfig("someone-else-a", "someone-else-r", timedelta(minutes=5), timedelta(days=1)),
            clock=clock,
        )
        with pytest.raises(AppError) as exc:
            issuer.verify(other.issue_access(identity), ACCESS)
        assert _kind_of(exc) is ErrorKind.TOKEN_INVALID

    def test_refresh_token_with_extra_claims_is_invalid(self, issuer, token_config, identity):
        padded = jwt.encode(
            {"sub": str(identity["_id"]), "type": REFRESH, "iat": 0, "exp": 4102444800, "jti": "x", "email": "a@b.c"},
            token_config.refresh_secret,
            algorithm="HS256",
        )
        with pytest.raises(AppError) as exc:
            issuer.verify(padded, REFRESH)
        assert _kind_of(exc) is ErrorKind.TOKEN_INVALID
