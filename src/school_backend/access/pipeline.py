from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from src.school_backend.access.credentials import CredentialVerifier, VerifiedIdentity
from src.school_backend.access.errors import AccessError, Forbidden, ServiceUnavailable
from src.school_backend.access.gate import authorize
from src.school_backend.access.identity_provider import IdentityProvider, get_identity_provider
from src.school_backend.access.profiles import ProfileResolver, ResolvedProfile, profile_lookups
from src.school_backend.access.scope import ScopeCalculator, ScopeSet
from src.school_backend.access.tokens import TokenIssuer, token_issuer
from src.school_backend.domain.models.profiles import Profile, SynthesizedProfile
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import Repositories, get_repositories
from src.school_backend.services.audit.service import audit_service


logger = logging.getLogger("access")

ALL_ROLES: FrozenSet[Role] = frozenset(Role)


@dataclass(frozen=True)
class AccessContext:
    """Immutable result of a successfully authorized request.

    Handlers receive this instead of reading caller state off the request.
    ``scope`` holds the student ids the caller may access; ``class_scope``
    is only populated for routes that address classes directly.
    """

    identity: VerifiedIdentity
    role: Role
    profile: Profile
    scope: ScopeSet
    requested_id: Optional[str] = None
    class_scope: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def profile_id(self) -> str:
        return self.profile.id

    @property
    def synthesized(self) -> bool:
        return isinstance(self.profile, SynthesizedProfile)

    def ensure_student(self, student_id: str) -> None:
        """Gate an additional student id (e.g. taken from a request body)."""

        authorize(self.role, {self.role}, self.scope, student_id)

    def ensure_class(self, class_id: int) -> None:
        authorize(self.role, {self.role}, self.class_scope, class_id)

    def audit_extra(self, **extra: object) -> dict:
        return {"role": self.role.value, **extra}


class AccessPipeline:
    """Credential Verifier → Profile Resolver → Scope Calculator → Access Gate.

    Every stage either hands its result to the next or raises an
    :class:`AccessError` that ends the request; nothing is retried. The
    pipeline holds no per-request state and is safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        resolver: ProfileResolver,
        scopes: ScopeCalculator,
    ) -> None:
        self._verifier = verifier
        self._resolver = resolver
        self._scopes = scopes

    @classmethod
    def build(
        cls,
        repositories: Repositories,
        provider: IdentityProvider,
        issuer: TokenIssuer,
    ) -> "AccessPipeline":
        return cls(
            verifier=CredentialVerifier(issuer, provider),
            resolver=ProfileResolver(profile_lookups(repositories.profiles), provider),
            scopes=ScopeCalculator(repositories.profiles, repositories.classes),
        )

    async def authorize(
        self,
        authorization: Optional[str],
        *,
        allowed_roles: Iterable[Role] = ALL_ROLES,
        requested_id: Optional[str] = None,
        requested_class_id: Optional[int] = None,
        include_class_scope: bool = False,
        provisioned: bool = False,
    ) -> AccessContext:
        """Run every stage for one request.

        ``provisioned`` routes read school-wide data that is not filtered by
        scope, so a synthesized profile is rejected there.
        """

        identity: Optional[VerifiedIdentity] = None
        resolved: Optional[ResolvedProfile] = None
        try:
            identity = await self._verifier.verify(authorization)
            try:
                resolved = await self._resolver.resolve(identity)
                scope = await self._scopes.compute_scope(resolved, requested_id)
                authorize(resolved.role, allowed_roles, scope, requested_id)
                if provisioned and resolved.synthesized:
                    raise Forbidden("route requires a provisioned profile")

                class_scope: FrozenSet[int] = frozenset()
                if include_class_scope or requested_class_id is not None:
                    class_scope = await self._scopes.compute_class_scope(resolved)
                    authorize(resolved.role, allowed_roles, class_scope, requested_class_id)
            except SQLAlchemyError as exc:
                raise ServiceUnavailable(f"persistence layer unavailable: {type(exc).__name__}") from exc
        except AccessError as exc:
            self._audit_rejection(exc, identity, resolved)
            raise

        return AccessContext(
            identity=identity,
            role=resolved.role,
            profile=resolved.profile,
            scope=scope,
            requested_id=requested_id,
            class_scope=class_scope,
        )

    @staticmethod
    def _audit_rejection(
        exc: AccessError,
        identity: Optional[VerifiedIdentity],
        resolved: Optional[ResolvedProfile],
    ) -> None:
        logger.info("Access rejected: %s (%s)", exc.kind, exc.reason)
        audit_service.log_event(
            action="access_denied",
            resource_type="access",
            subject=identity.external_id if identity else None,
            extra={
                "kind": exc.kind,
                "role": resolved.role.value if resolved else None,
                "source": identity.source if identity else None,
            },
        )


def get_access_pipeline() -> AccessPipeline:
    """Build a pipeline over the currently active collaborators."""

    return AccessPipeline.build(get_repositories(), get_identity_provider(), token_issuer)
