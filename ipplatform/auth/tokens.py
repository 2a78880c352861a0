"""
IP Platform - Credential Signer

Creates and validates signed, time-bounded JWTs with:
- Subject (principal ID)
- Token type (access or refresh) so one kind cannot stand in for the other
- Role and principal class (access tokens only)
- Unique token ID (jti)

Security:
- Access tokens are short-lived and self-contained; they are never persisted
- Refresh tokens are long-lived and only honoured when a matching
  refresh session exists in the session store
- The signing key is loaded once at startup and never mutated
"""

from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Optional
from uuid import UUID
import secrets

from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import BaseModel, Field

from ipplatform.auth.models import PrincipalClass
from ipplatform.config import settings


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """
    Decoded JWT payload.

    Attributes:
        sub: Subject (principal ID)
        type: access or refresh
        role: Role claim (access tokens only)
        pcl: Principal class (access tokens only)
        jti: Unique token ID
        iat: Issued-at timestamp
        exp: Expiration timestamp
    """
    sub: str = Field(..., description="Principal ID")
    type: TokenType = Field(..., description="Token type")
    role: Optional[str] = Field(default=None, description="Role claim")
    pcl: Optional[PrincipalClass] = Field(default=None, description="Principal class")
    jti: str = Field(..., description="Token ID")
    iat: datetime = Field(..., description="Issued at time")
    exp: datetime = Field(..., description="Expiration time")

    @property
    def principal_id(self) -> UUID:
        return UUID(self.sub)


class InvalidTokenError(Exception):
    """Raised when JWT validation fails."""
    pass


class TokenExpiredError(InvalidTokenError):
    """Signature is valid but the token is past its expiry."""
    pass


class MalformedTokenError(InvalidTokenError):
    """Bad signature, bad structure or missing claims."""
    pass


class WrongTokenTypeError(InvalidTokenError):
    """A refresh token was presented where an access token is required, or vice versa."""
    pass


class CredentialSigner:
    """
    Issues and verifies tokens with a fixed key.

    One instance is built from settings at startup; replacing the key only
    requires building a new signer from different configuration.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_ttl: timedelta = timedelta(minutes=15),
    ):
        if not secret_key:
            raise ValueError("Signing key must not be empty; set SECRET_KEY")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_ttl = access_token_ttl

    def issue(
        self,
        subject: str,
        token_type: TokenType,
        ttl: timedelta,
        role: Optional[str] = None,
        principal_class: Optional[PrincipalClass] = None,
    ) -> str:
        """
        Sign a token for subject valid for ttl.

        Refresh tokens carry only the subject and the type marker.
        """
        now = datetime.utcnow()
        payload = {
            "sub": str(subject),
            "type": token_type.value,
            # Random jti keeps every token string unique
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": now + ttl,
        }
        if token_type == TokenType.ACCESS:
            payload["role"] = role
            payload["pcl"] = principal_class.value if principal_class else None

        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def issue_access_token(
        self,
        subject: str,
        role: str,
        principal_class: PrincipalClass,
        ttl: Optional[timedelta] = None,
    ) -> str:
        return self.issue(
            subject,
            TokenType.ACCESS,
            ttl or self.access_token_ttl,
            role=role,
            principal_class=principal_class,
        )

    def issue_refresh_token(self, subject: str, ttl: timedelta) -> str:
        return self.issue(subject, TokenType.REFRESH, ttl)

    def verify(self, token: str, expected_type: TokenType) -> TokenClaims:
        """
        Verify and decode a token.

        Args:
            token: Encoded JWT string
            expected_type: Type the caller requires

        Returns:
            Decoded TokenClaims

        Raises:
            TokenExpiredError: Token is past its expiry
            MalformedTokenError: Signature or structure invalid
            WrongTokenTypeError: Type claim does not match expected_type
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JWTError as e:
            raise MalformedTokenError(f"Token validation failed: {e}") from e

        if payload.get("type") != expected_type.value:
            raise WrongTokenTypeError(
                f"Expected {expected_type.value} token, got {payload.get('type')}"
            )

        try:
            claims = TokenClaims(**payload)
        except ValueError as e:
            raise MalformedTokenError("Token payload is incomplete") from e

        if claims.type == TokenType.ACCESS and (not claims.role or claims.pcl is None):
            raise MalformedTokenError("Access token is missing role claims")

        return claims

    @property
    def access_token_expiry_seconds(self) -> int:
        return int(self.access_token_ttl.total_seconds())


@lru_cache
def get_signer() -> CredentialSigner:
    """Return the process-wide signer built from settings."""
    return CredentialSigner(
        settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
