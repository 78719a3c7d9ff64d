"""
Access token service.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable

from jose import JWTError, jwt

from edunexia_authz.core.config import AuthzSettings


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by an access token."""
    user_id: int
    institution_ids: frozenset[int] = field(default_factory=frozenset)
    polo_ids: frozenset[int] = field(default_factory=frozenset)


class TokenService:
    """
    Issues and verifies bearer tokens.

    Claims: sub (user id), institution_ids, polo_ids, exp, type.
    """

    def __init__(self, config: AuthzSettings):
        self.config = config

    def create_access_token(
        self,
        user_id: int,
        institution_ids: Iterable[int] = (),
        polo_ids: Iterable[int] = (),
        expires_minutes: int | None = None,
    ) -> str:
        """Create JWT access token."""
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=expires_minutes or self.config.access_token_expire_minutes
        )
        payload = {
            "sub": str(user_id),
            "institution_ids": sorted(institution_ids),
            "polo_ids": sorted(polo_ids),
            "exp": expire,
            "type": "access",
        }
        return jwt.encode(
            payload,
            self.config.secret_key,
            algorithm=self.config.algorithm,
        )

    def decode_access_token(self, token: str) -> TokenClaims:
        """
        Verify a token and return its claims.

        Raises:
            JWTError: invalid signature, expired, wrong type or bad claims
        """
        payload = jwt.decode(
            token,
            self.config.secret_key,
            algorithms=[self.config.algorithm],
        )
        if payload.get("type") != "access":
            raise JWTError("Not an access token")

        try:
            return TokenClaims(
                user_id=int(payload["sub"]),
                institution_ids=frozenset(int(i) for i in payload.get("institution_ids") or []),
                polo_ids=frozenset(int(p) for p in payload.get("polo_ids") or []),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise JWTError(f"Malformed claims: {exc}") from exc
