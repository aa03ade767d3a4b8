import asyncio
import json
import logging
from dataclasses import FrozenInstanceError

import jwt
import pytest
from sqlalchemy.exc import OperationalError

from src.school_backend.access.credentials import CredentialVerifier, VerifiedIdentity, parse_bearer
from src.school_backend.access.errors import Forbidden, ProfileNotFound, ServiceUnavailable, Unauthenticated
from src.school_backend.access.gate import authorize
from src.school_backend.access.identity_provider import StaticIdentityProvider
from src.school_backend.access.pipeline import AccessPipeline
from src.school_backend.access.profiles import PROFILE_LOOKUP_ORDER, ProfileResolver, ResolvedProfile, profile_lookups
from src.school_backend.access.scope import ScopeCalculator
from src.school_backend.access.tokens import TokenError, TokenIssuer, token_issuer
from src.school_backend.config import settings
from src.school_backend.domain.models.profiles import Parent, Student, SynthesizedProfile, Teacher
from src.school_backend.domain.models.role import Role
from src.school_backend.infra.db.wiring import get_repositories


class SlowProvider(StaticIdentityProvider):
    async def introspect_token(self, token):
        await asyncio.sleep(1)
        return await super().introspect_token(token)


def _pipeline(provider):
    return AccessPipeline.build(get_repositories(), provider, token_issuer)


def test_parse_bearer_rejects_missing_and_malformed_headers():
    assert parse_bearer("Bearer abc") == "abc"
    for value in (None, "", "abc", "Basic abc", "Bearer "):
        with pytest.raises(Unauthenticated):
            parse_bearer(value)


def test_local_token_round_trip_and_rejections():
    issuer = TokenIssuer(secret="unit-secret", algorithm="HS256", expires_minutes=5)
    payload = issuer.verify_local_token(issuer.issue(subject="student-1", role="student"))
    assert payload["sub"] == "student-1"
    assert payload["role"] == "student"

    other = TokenIssuer(secret="another-secret", algorithm="HS256", expires_minutes=5)
    with pytest.raises(TokenError):
        issuer.verify_local_token(other.issue(subject="student-1"))

    expired = jwt.encode({"sub": "student-1", "exp": 1}, "unit-secret", algorithm="HS256")
    with pytest.raises(TokenError):
        issuer.verify_local_token(expired)


async def test_verifier_prefers_local_token(school):
    school.provider.available = False
    verifier = CredentialVerifier(token_issuer, school.provider)

    identity = await verifier.verify(school.headers("teacher-1", role="teacher")["Authorization"])

    assert identity.external_id == "teacher-1"
    assert identity.source == "local"
    assert identity.role_claim == "teacher"


async def test_verifier_falls_back_to_provider(school):
    verifier = CredentialVerifier(token_issuer, school.provider)

    identity = await verifier.verify(f"Bearer {school.teacher_web_token}")

    assert identity == VerifiedIdentity(external_id="teacher-1", source="provider")


async def test_verifier_rejects_token_unknown_everywhere(school):
    verifier = CredentialVerifier(token_issuer, school.provider)
    with pytest.raises(Unauthenticated):
        await verifier.verify("Bearer not-a-token")


async def test_verifier_reports_unreachable_provider_as_unavailable(school):
    school.provider.available = False
    verifier = CredentialVerifier(token_issuer, school.provider)
    with pytest.raises(ServiceUnavailable):
        await verifier.verify(f"Bearer {school.teacher_web_token}")


async def test_verifier_times_out_slow_provider(school, monkeypatch):
    monkeypatch.setattr(settings, "idp_timeout_seconds", 0.05)
    provider = SlowProvider()
    provider.add_token(school.teacher_web_token, "teacher-1")
    verifier = CredentialVerifier(token_issuer, provider)

    with pytest.raises(ServiceUnavailable):
        await verifier.verify(f"Bearer {school.teacher_web_token}")


async def test_resolver_uses_fixed_lookup_order(school):
    # The same id provisioned as both teacher and parent resolves as teacher.
    school.store.add_parent(Parent(id="teacher-1", name="Amina", surname="Okafor"))
    resolver = ProfileResolver(profile_lookups(get_repositories().profiles), school.provider)

    resolved = await resolver.resolve(VerifiedIdentity(external_id="teacher-1", source="local"))

    assert PROFILE_LOOKUP_ORDER.index(Role.TEACHER) < PROFILE_LOOKUP_ORDER.index(Role.PARENT)
    assert resolved.role == Role.TEACHER
    assert isinstance(resolved.profile, Teacher)


async def test_resolver_ignores_conflicting_role_claim(school):
    resolver = ProfileResolver(profile_lookups(get_repositories().profiles), school.provider)

    resolved = await resolver.resolve(VerifiedIdentity(external_id="student-1", source="local", role_claim="admin"))

    assert resolved.role == Role.STUDENT
    assert isinstance(resolved.profile, Student)


async def test_resolver_synthesizes_profile_from_provider_role_hint(school):
    resolver = ProfileResolver(profile_lookups(get_repositories().profiles), school.provider)

    resolved = await resolver.resolve(VerifiedIdentity(external_id="ghost-teacher", source="provider"))

    assert resolved.role == Role.TEACHER
    assert resolved.synthesized
    assert resolved.profile.id == "ghost-teacher"


async def test_resolver_without_role_hint_is_profile_not_found(school):
    resolver = ProfileResolver(profile_lookups(get_repositories().profiles), school.provider)
    with pytest.raises(ProfileNotFound):
        await resolver.resolve(VerifiedIdentity(external_id="ghost-norole", source="provider"))


async def test_resolver_reports_unreachable_provider_during_hint_lookup(school):
    school.provider.available = False
    resolver = ProfileResolver(profile_lookups(get_repositories().profiles), school.provider)
    with pytest.raises(ServiceUnavailable):
        await resolver.resolve(VerifiedIdentity(external_id="ghost-teacher", source="local"))


async def test_scope_per_role(school):
    repos = get_repositories()
    scopes = ScopeCalculator(repos.profiles, repos.classes)

    def resolved(role, profile_id):
        return ResolvedProfile(role=role, profile=getattr(repos.profiles, f"get_{role.value}")(profile_id))

    assert await scopes.compute_scope(resolved(Role.STUDENT, "student-1")) == {"student-1"}
    assert await scopes.compute_scope(resolved(Role.PARENT, "parent-1")) == {"student-1", "student-3"}
    # Current enrollments of supervised and taught classes; student-5 left 7A.
    assert await scopes.compute_scope(resolved(Role.TEACHER, "teacher-1")) == {"student-1", "student-2", "student-3"}
    assert await scopes.compute_scope(resolved(Role.ADMIN, "admin-1")) == set(school.store.students)
    assert await scopes.compute_scope(resolved(Role.ACCOUNTANT, "accountant-1"), "student-4") == {"student-4"}
    assert await scopes.compute_class_scope(resolved(Role.TEACHER, "teacher-1")) == {1, 2}


async def test_scope_of_synthesized_profile_is_empty(school):
    repos = get_repositories()
    scopes = ScopeCalculator(repos.profiles, repos.classes)
    synthesized = ResolvedProfile(role=Role.ADMIN, profile=SynthesizedProfile(id="ghost", name="Ghost"))

    assert await scopes.compute_scope(synthesized) == frozenset()
    assert await scopes.compute_class_scope(synthesized) == frozenset()


def test_gate_checks_role_then_scope():
    authorize(Role.TEACHER, {Role.TEACHER}, frozenset({"student-1"}), "student-1")
    authorize(Role.TEACHER, {Role.TEACHER}, frozenset())

    with pytest.raises(Forbidden):
        authorize(Role.STUDENT, {Role.TEACHER}, frozenset({"student-1"}))
    with pytest.raises(Forbidden):
        authorize(Role.TEACHER, {Role.TEACHER}, frozenset({"student-1"}), "student-4")


async def test_pipeline_builds_immutable_context(school):
    context = await _pipeline(school.provider).authorize(
        school.headers("teacher-1")["Authorization"],
        allowed_roles={Role.TEACHER},
        requested_id="student-2",
    )

    assert context.role == Role.TEACHER
    assert context.profile_id == "teacher-1"
    assert context.requested_id == "student-2"
    assert context.scope == {"student-1", "student-2", "student-3"}
    with pytest.raises(FrozenInstanceError):
        context.role = Role.ADMIN


async def test_pipeline_rejects_out_of_scope_request(school):
    with pytest.raises(Forbidden):
        await _pipeline(school.provider).authorize(
            school.headers("teacher-1")["Authorization"],
            allowed_roles={Role.TEACHER},
            requested_id="student-4",
        )


async def test_pipeline_rejects_class_outside_class_scope(school):
    with pytest.raises(Forbidden):
        await _pipeline(school.provider).authorize(
            school.headers("teacher-1")["Authorization"],
            allowed_roles={Role.TEACHER},
            requested_class_id=3,
        )


async def test_requested_id_never_widens_student_scope(school):
    repos = get_repositories()
    scopes = ScopeCalculator(repos.profiles, repos.classes)
    student = ResolvedProfile(role=Role.STUDENT, profile=repos.profiles.get_student("student-1"))

    assert await scopes.compute_scope(student, "student-4") == {"student-1"}


async def test_staff_scope_narrows_to_requested_id_even_if_unknown(school):
    repos = get_repositories()
    scopes = ScopeCalculator(repos.profiles, repos.classes)
    admin = ResolvedProfile(role=Role.ADMIN, profile=repos.profiles.get_admin("admin-1"))
    accountant = ResolvedProfile(role=Role.ACCOUNTANT, profile=repos.profiles.get_accountant("accountant-1"))

    assert await scopes.compute_scope(admin, "no-such-student") == {"no-such-student"}
    assert await scopes.compute_scope(accountant, "no-such-student") == {"no-such-student"}


async def test_scope_is_stable_across_calls(school):
    repos = get_repositories()
    scopes = ScopeCalculator(repos.profiles, repos.classes)

    for role, profile_id in [(Role.STUDENT, "student-1"), (Role.PARENT, "parent-1"), (Role.TEACHER, "teacher-1")]:
        resolved = ResolvedProfile(role=role, profile=getattr(repos.profiles, f"get_{role.value}")(profile_id))
        assert await scopes.compute_scope(resolved) == await scopes.compute_scope(resolved)


async def test_provisioned_routes_reject_synthesized_profile(school):
    pipeline = _pipeline(school.provider)
    header = school.headers("ghost-admin", role="admin")["Authorization"]

    context = await pipeline.authorize(header, allowed_roles={Role.ADMIN})
    assert context.synthesized
    assert context.scope == frozenset()

    with pytest.raises(Forbidden):
        await pipeline.authorize(header, allowed_roles={Role.ADMIN}, provisioned=True)

    provisioned = await pipeline.authorize(
        school.headers("admin-1")["Authorization"], allowed_roles={Role.ADMIN}, provisioned=True
    )
    assert not provisioned.synthesized


async def test_persistence_failure_during_resolution_is_unavailable(school, monkeypatch, caplog):
    def broken_lookup(profile_id):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    monkeypatch.setattr(get_repositories().profiles, "get_student", broken_lookup)

    with caplog.at_level(logging.INFO, logger="audit"):
        with pytest.raises(ServiceUnavailable) as excinfo:
            await _pipeline(school.provider).authorize(school.headers("student-1")["Authorization"])

    assert isinstance(excinfo.value.__cause__, OperationalError)
    denials = [json.loads(r.getMessage()) for r in caplog.records if r.name == "audit"]
    assert [e["extra"]["kind"] for e in denials if e["action"] == "access_denied"] == ["service_unavailable"]


async def test_persistence_failure_during_scope_is_unavailable(school, monkeypatch):
    def broken_children(parent_id):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    monkeypatch.setattr(get_repositories().profiles, "children_of_parent", broken_children)

    with pytest.raises(ServiceUnavailable):
        await _pipeline(school.provider).authorize(school.headers("parent-1")["Authorization"])
