"""
Signed, time-bounded access and refresh tokens.

Access and refresh tokens are signed with different secrets and carry
different claim sets:

- access:  ``sub``, ``email``, ``username``, ``full_name``
- refresh: ``sub`` only

Both also carry the structural claims ``type``, ``iat``, ``exp`` and
``jti``. Expiry is checked against the issuer's clock (``now >= exp`` is
expired) so tests can drive time deterministically.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional
from uuid import uuid4
import logging

from jose import JWTError, jwt

from mediahub.core.config import settings
from mediahub.core.errors import AppError, ErrorKind

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"

STRUCTURAL_CLAIMS = frozenset({"sub", "type", "iat", "exp", "jti"})
PROFILE_CLAIMS = ("email", "username", "full_name")
CLAIM_SETS = {
    ACCESS: STRUCTURAL_CLAIMS | set(PROFILE_CLAIMS),
    REFRESH: STRUCTURAL_CLAIMS,
}


@dataclass(frozen=True)
class TokenConfig:
    access_secret: str
    refresh_secret: str
    access_ttl: timedelta
    refresh_ttl: timedelta
    algorithm: str = "HS256"

    def __post_init__(self):
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("Both token secrets are required")
        if self.access_secret == self.refresh_secret:
            raise ValueError("Access and refresh tokens must use different secrets")
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise ValueError("Token TTLs must be positive")

    @classmethod
    def from_settings(cls, s=settings) -> "TokenConfig":
        return cls(
            access_secret=s.ACCESS_TOKEN_SECRET,
            refresh_secret=s.REFRESH_TOKEN_SECRET,
            access_ttl=timedelta(minutes=s.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=s.REFRESH_TOKEN_EXPIRE_DAYS),
            algorithm=s.ALGORITHM,
        )

    def secret_for(self, kind: str) -> str:
        if kind == ACCESS:
            return self.access_secret
        if kind == REFRESH:
            return self.refresh_secret
        raise ValueError(f"Unknown token kind: {kind}")

    def ttl_for(self, kind: str) -> timedelta:
        return self.access_ttl if kind == ACCESS else self.refresh_ttl


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field(identity: Any, name: str) -> Any:
    if isinstance(identity, Mapping):
        return identity.get(name)
    return getattr(identity, name, None)


def _subject(identity: Any) -> str:
    subject = _field(identity, "_id")
    if subject is None:
        subject = _field(identity, "id")
    if subject is None:
        raise ValueError("Identity has no id to use as token subject")
    return str(subject)


class TokenIssuer:
    """Issues and verifies access/refresh JWTs using an explicit ``TokenConfig``."""

    def __init__(self, config: TokenConfig, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    def _encode(self, kind: str, claims: Dict[str, Any]) -> str:
        issued_at = self.now()
        expire = issued_at + self.config.ttl_for(kind)
        to_encode = dict(claims)
        to_encode.update({
            "type": kind,
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
            "jti": uuid4().hex,
        })
        return jwt.encode(to_encode, self.config.secret_for(kind), algorithm=self.config.algorithm)

    def issue_access(self, identity: Any) -> str:
        """Create JWT access token"""
        claims = {"sub": _subject(identity)}
        for name in PROFILE_CLAIMS:
            claims[name] = _field(identity, name) or ""
        return self._encode(ACCESS, claims)

    def issue_refresh(self, identity: Any) -> str:
        """Create JWT refresh token"""
        return self._encode(REFRESH, {"sub": _subject(identity)})

    def _decode(self, token: str, kind: str) -> Dict[str, Any]:
        # Expiry is checked by ``verify`` against the injected clock
        return jwt.decode(
            token,
            self.config.secret_for(kind),
            algorithms=[self.config.algorithm],
            options={"verify_exp": False, "verify_iat": False, "verify_nbf": False},
        )

    def verify(self, token: str, kind: str) -> Dict[str, Any]:
        """Verify and decode a token of the given kind, returning its claims."""
        if kind not in CLAIM_SETS:
            raise ValueError(f"Unknown token kind: {kind}")
        if not token or not isinstance(token, str):
            raise AppError(ErrorKind.TOKEN_INVALID, "Token is missing")

        try:
            payload = self._decode(token, kind)
        except JWTError as e:
            other = REFRESH if kind == ACCESS else ACCESS
            try:
                self._decode(token, other)
            except JWTError:
                logger.info(f"JWT decode failed for {kind} token: {e}")
                raise AppError(ErrorKind.TOKEN_INVALID, f"Malformed or unsigned {kind} token")
            raise AppError(ErrorKind.TOKEN_KIND_MISMATCH, f"{other} token presented as {kind} token")

        if payload.get("type") != kind:
            raise AppError(ErrorKind.TOKEN_KIND_MISMATCH, f"Token type {payload.get('type')!r} presented as {kind}")
        if set(payload) != CLAIM_SETS[kind]:
            raise AppError(ErrorKind.TOKEN_INVALID, f"Unexpected claim set for {kind} token")
        if not payload.get("sub"):
            raise AppError(ErrorKind.TOKEN_INVALID, "Token has no subject")

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise AppError(ErrorKind.TOKEN_INVALID, "Token has no expiry")
        if self.now().timestamp() >= exp:
            raise AppError(ErrorKind.TOKEN_EXPIRED, f"{kind} token expired")
        return payload


token_issuer = TokenIssuer(TokenConfig.from_settings())
