from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from src.school_backend.config import settings


class TokenError(Exception):
    pass


class TokenIssuer:
    """Issues and verifies the self-signed tokens handed to mobile clients.

    The payload carries the external identity id (``sub``) together with the
    role and email known at issuance time.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ) -> None:
        self._secret = secret or settings.jwt_secret
        self._algorithm = algorithm or settings.jwt_algorithm
        self._expires_minutes = expires_minutes or settings.jwt_expires_minutes

    def issue(self, *, subject: str, role: Optional[str] = None, email: Optional[str] = None) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=self._expires_minutes)).timestamp()),
        }
        if role:
            payload["role"] = role
        if email:
            payload["email"] = email
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_local_token(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise TokenError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenError("Invalid token") from exc
        if not payload.get("sub"):
            raise TokenError("Invalid token payload")
        return payload


token_issuer = TokenIssuer()
