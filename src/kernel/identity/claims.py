"""
Upstream identity token verification.

Tokens are issued by the platform's identity provider; the kernel only
verifies them and maps their claims to a ``Principal``.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError as PydanticValidationError

from src.config import get_settings
from src.kernel.errors import ForbiddenError
from src.kernel.identity.principal import Principal
from src.kernel.models.user import UserRole
from src.logging_config import get_logger

logger = get_logger(__name__)


class IdentityClaims(BaseModel):
    """Claims the kernel reads from an upstream access token."""

    sub: str
    role: UserRole
    institution_id: Optional[str] = None
    qcto_id: Optional[str] = None
    provinces: List[str] = []


class ClaimsVerifier:
    """
    Verifies bearer tokens and turns them into principals.

    Usage:
        verifier = ClaimsVerifier()
        principal = verifier.principal_from_token(raw_token)
    """

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        settings = get_settings()
        self.secret_key = secret_key or settings.identity_secret_key
        self.algorithm = algorithm or settings.identity_algorithm

    def decode(self, token: str) -> IdentityClaims:
        """
        Verify signature and expiry, then parse the claims.

        Raises:
            ForbiddenError: If the token is invalid, expired or malformed
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            return IdentityClaims.model_validate(payload)
        except JWTError as e:
            logger.info("Bearer token rejected", extra={"cause": type(e).__name__})
            raise ForbiddenError("Invalid or expired credentials", reason="INVALID_TOKEN") from e
        except PydanticValidationError as e:
            logger.info("Bearer token claims malformed", extra={"error_count": e.error_count()})
            raise ForbiddenError("Invalid or expired credentials", reason="INVALID_CLAIMS") from e

    def principal_from_token(self, token: str) -> Principal:
        claims = self.decode(token)
        return Principal(
            id=claims.sub,
            role=claims.role,
            institution_id=claims.institution_id,
            qcto_id=claims.qcto_id,
            assigned_provinces=claims.provinces,
        )

    def encode(self, claims: IdentityClaims, expires_in_seconds: int = 900) -> str:
        """
        Sign claims with the shared secret.

        Only used by tests and local tooling that stand in for the identity
        provider.
        """
        now = datetime.now(timezone.utc)
        payload = claims.model_dump(mode="json")
        payload.update({"iat": now, "exp": now + timedelta(seconds=expires_in_seconds)})
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
