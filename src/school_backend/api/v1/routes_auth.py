from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr

from src.school_backend.access.identity_provider import ProviderUnavailable, bounded, get_identity_provider
from src.school_backend.access.pipeline import AccessContext
from src.school_backend.access.tokens import token_issuer
from src.school_backend.domain.models.profiles import Profile, SynthesizedProfile
from src.school_backend.domain.models.role import Role
from src.school_backend.security import require_access
from src.school_backend.services.audit.service import audit_service


logger = logging.getLogger("access")

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginUser(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    role: Optional[Role] = None
    image_url: Optional[str] = None


class LoginResponse(BaseModel):
    token: str
    user: LoginUser


class MeResponse(BaseModel):
    role: Role
    profile: Profile
    synthesized: bool


class VerifyResponse(BaseModel):
    authenticated: bool
    user_id: str
    role: Role


_INVALID_LOGIN = "Invalid email or password"


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest) -> LoginResponse:
    """Check credentials at the identity provider and issue a local token.

    The token embeds the role from the provider's user metadata, if any; no
    role is invented when the metadata has none.
    """

    provider = get_identity_provider()
    try:
        user = await bounded(provider.find_user_by_email(payload.email))
        verified = user is not None and await bounded(provider.verify_password(user.id, payload.password))
    except ProviderUnavailable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service temporarily unavailable",
        )

    if user is None or not verified:
        audit_service.log_event(action="login_failed", resource_type="session")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_INVALID_LOGIN)

    role = Role.parse(user.role_hint)
    email = user.email or payload.email
    token = token_issuer.issue(subject=user.id, role=role.value if role else None, email=email)

    audit_service.log_event(
        action="login",
        resource_type="session",
        subject=user.id,
        extra={"role": role.value if role else None},
    )

    return LoginResponse(
        token=token,
        user=LoginUser(id=user.id, name=user.display_name, email=email, role=role, image_url=user.image_url),
    )


@router.get("/me", response_model=MeResponse)
async def me(context: AccessContext = Depends(require_access())) -> MeResponse:
    return MeResponse(
        role=context.role,
        profile=context.profile,
        synthesized=isinstance(context.profile, SynthesizedProfile),
    )


@router.get("/verify", response_model=VerifyResponse)
async def verify(context: AccessContext = Depends(require_access())) -> VerifyResponse:
    return VerifyResponse(authenticated=True, user_id=context.identity.external_id, role=context.role)
