from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from starlette.concurrency import run_in_threadpool

from src.school_backend.access.credentials import VerifiedIdentity
from src.school_backend.access.errors import ProfileNotFound, ServiceUnavailable
from src.school_backend.access.identity_provider import IdentityProvider, ProviderUnavailable, bounded
from src.school_backend.domain.models.profiles import Profile, SynthesizedProfile
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.repositories import ProfileRepository


logger = logging.getLogger("access")

# Profiles live in five independent collections keyed by the same id space.
# An id present in more than one collection resolves to the first role in
# this order; changing it changes who a caller is.
PROFILE_LOOKUP_ORDER: Tuple[Role, ...] = (
    Role.STUDENT,
    Role.TEACHER,
    Role.PARENT,
    Role.ADMIN,
    Role.ACCOUNTANT,
)

ProfileLookup = Callable[[str], Optional[Profile]]


@dataclass(frozen=True)
class ResolvedProfile:
    role: Role
    profile: Profile

    @property
    def synthesized(self) -> bool:
        return isinstance(self.profile, SynthesizedProfile)


def profile_lookups(repository: ProfileRepository) -> List[Tuple[Role, ProfileLookup]]:
    """Build the ordered ``(Role, lookup)`` list for a profile repository."""

    by_role = {
        Role.STUDENT: repository.get_student,
        Role.TEACHER: repository.get_teacher,
        Role.PARENT: repository.get_parent,
        Role.ADMIN: repository.get_admin,
        Role.ACCOUNTANT: repository.get_accountant,
    }
    return [(role, by_role[role]) for role in PROFILE_LOOKUP_ORDER]


class ProfileResolver:
    """Resolves a verified identity to exactly one role and profile.

    Lookups run in :data:`PROFILE_LOOKUP_ORDER` and stop at the first hit.
    When no collection knows the id, a role hint (the local token's embedded
    role, else the provider's user metadata) may yield a synthesized,
    non-persisted profile. Without a usable hint resolution fails with
    :class:`ProfileNotFound`; a default role is never assumed.
    """

    def __init__(
        self,
        lookups: Sequence[Tuple[Role, ProfileLookup]],
        provider: IdentityProvider,
    ) -> None:
        self._lookups = list(lookups)
        self._provider = provider

    async def resolve(self, identity: VerifiedIdentity) -> ResolvedProfile:
        external_id = identity.external_id
        for role, lookup in self._lookups:
            profile = await run_in_threadpool(lookup, external_id)
            if profile is not None:
                if identity.role_claim and Role.parse(identity.role_claim) != role:
                    logger.warning(
                        "Token role claim %r disagrees with resolved role %s; using resolved role",
                        identity.role_claim,
                        role.value,
                    )
                return ResolvedProfile(role=role, profile=profile)

        return await self._resolve_from_hint(identity)

    async def _resolve_from_hint(self, identity: VerifiedIdentity) -> ResolvedProfile:
        role = Role.parse(identity.role_claim)
        name = "User"
        email = identity.email

        if role is None:
            try:
                user = await bounded(self._provider.get_user_metadata(identity.external_id))
            except ProviderUnavailable as exc:
                raise ServiceUnavailable("identity provider unavailable during metadata lookup") from exc
            if user is not None:
                role = Role.parse(user.role_hint)
                name = user.display_name
                email = email or user.email

        if role is None:
            raise ProfileNotFound("no profile in any collection and no usable role hint")

        logger.warning(
            "No %s profile is provisioned for this identity; using a synthesized profile. "
            "Data-scoped operations will return no records until it is provisioned.",
            role.value,
        )
        profile = SynthesizedProfile(id=identity.external_id, name=name, email=email)
        return ResolvedProfile(role=role, profile=profile)
