from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from src.school_backend.access.errors import ServiceUnavailable, Unauthenticated
from src.school_backend.access.identity_provider import IdentityProvider, ProviderUnavailable, bounded
from src.school_backend.access.tokens import TokenError, TokenIssuer


logger = logging.getLogger("access")


@dataclass(frozen=True)
class VerifiedIdentity:
    """An external identity whose credential has been verified.

    ``source`` is ``"local"`` for self-signed tokens and ``"provider"`` for
    tokens accepted by the identity provider. Provider tokens carry no role
    claim; ``role_claim`` is then None.
    """

    external_id: str
    source: str
    role_claim: Optional[str] = None
    email: Optional[str] = None


def parse_bearer(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` value."""

    if not authorization:
        raise Unauthenticated("missing Authorization header")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise Unauthenticated("invalid auth scheme")
    return parts[1].strip()


class CredentialVerifier:
    """Turns a bearer credential into a :class:`VerifiedIdentity`.

    The locally-signed token path is tried first since it needs no network;
    only if it fails is the identity provider asked to introspect the token.
    If the provider cannot be reached after the local path has failed the
    caller gets ``ServiceUnavailable`` rather than ``Unauthenticated``: the
    credential may well be valid.
    """

    def __init__(self, issuer: TokenIssuer, provider: IdentityProvider) -> None:
        self._issuer = issuer
        self._provider = provider

    async def verify(self, authorization: Optional[str]) -> VerifiedIdentity:
        token = parse_bearer(authorization)

        try:
            payload = self._issuer.verify_local_token(token)
        except TokenError as exc:
            logger.debug("Local token verification failed (%s); trying identity provider", exc)
        else:
            role = payload.get("role")
            email = payload.get("email")
            return VerifiedIdentity(
                external_id=str(payload["sub"]),
                source="local",
                role_claim=role if isinstance(role, str) else None,
                email=email if isinstance(email, str) else None,
            )

        try:
            external_id = await bounded(self._provider.introspect_token(token))
        except ProviderUnavailable as exc:
            raise ServiceUnavailable("identity provider unavailable during introspection") from exc

        if not external_id:
            raise Unauthenticated("both local and provider verification failed")
        return VerifiedIdentity(external_id=external_id, source="provider")
