from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Awaitable, Dict, Optional, Protocol, TypeVar

import httpx

from src.school_backend.config import settings


logger = logging.getLogger("identity_provider")

T = TypeVar("T")


class ProviderUnavailable(Exception):
    """The identity provider could not be reached or answered with an error."""


async def bounded(call: Awaitable[T], timeout_seconds: Optional[float] = None) -> T:
    """Await a provider call, converting a timeout into ProviderUnavailable."""

    limit = timeout_seconds if timeout_seconds is not None else settings.idp_timeout_seconds
    try:
        return await asyncio.wait_for(call, timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("Identity provider call timed out after %.1fs", limit)
        raise ProviderUnavailable("timeout") from exc


@dataclass
class ProviderUser:
    """The subset of a provider-side user record this service relies on."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    # Provider-side metadata; ``role`` here is the only role hint we trust.
    public_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or "User"

    @property
    def role_hint(self) -> Optional[str]:
        value = self.public_metadata.get("role")
        return value if isinstance(value, str) else None


class IdentityProvider(Protocol):
    async def introspect_token(self, token: str) -> Optional[str]:
        """Return the external id for an active provider token, else None."""

    async def get_user_metadata(self, external_id: str) -> Optional[ProviderUser]:
        """Return the provider-side user record, or None if unknown."""

    async def find_user_by_email(self, email: str) -> Optional[ProviderUser]:
        ...

    async def verify_password(self, user_id: str, password: str) -> bool:
        ...


class HttpIdentityProvider:
    """Client for a Clerk-style identity provider REST API.

    Token introspection follows RFC 7662 (``POST /oauth/introspect`` returning
    ``{"active": bool, "sub": ...}``); user lookups use the ``/v1/users``
    resource. Network failures and 5xx answers raise
    :class:`ProviderUnavailable`; definite negative answers return ``None`` or
    ``False``. Tokens and passwords are never logged.
    """

    def __init__(
        self,
        base_url: str,
        secret_key: Optional[str],
        timeout_seconds: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {secret_key}"} if secret_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Optional[Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Identity provider call %s %s failed: %s", method, path, type(exc).__name__)
            raise ProviderUnavailable(path) from exc

        if response.status_code >= 500:
            logger.error("Identity provider %s %s returned status %s", method, path, response.status_code)
            raise ProviderUnavailable(path)
        if response.status_code in (400, 401, 404, 422):
            return None
        if response.status_code != 200:
            logger.error("Identity provider %s %s returned status %s", method, path, response.status_code)
            return None

        try:
            return response.json()
        except ValueError:
            logger.error("Identity provider %s %s returned non-JSON response", method, path)
            raise ProviderUnavailable(path)

    async def introspect_token(self, token: str) -> Optional[str]:
        data = await self._request("POST", "/oauth/introspect", data={"token": token})
        if not isinstance(data, dict) or not data.get("active"):
            return None
        subject = data.get("sub")
        return str(subject) if subject else None

    async def get_user_metadata(self, external_id: str) -> Optional[ProviderUser]:
        data = await self._request("GET", f"/v1/users/{external_id}")
        return _user_from_payload(data) if isinstance(data, dict) else None

    async def find_user_by_email(self, email: str) -> Optional[ProviderUser]:
        data = await self._request("GET", "/v1/users", params={"email_address": email})
        if isinstance(data, dict):
            data = data.get("data")
        if not isinstance(data, list) or not data:
            return None
        return _user_from_payload(data[0])

    async def verify_password(self, user_id: str, password: str) -> bool:
        data = await self._request("POST", f"/v1/users/{user_id}/verify_password", json={"password": password})
        return isinstance(data, dict) and bool(data.get("verified"))

    async def aclose(self) -> None:
        await self._client.aclose()


def _user_from_payload(data: Dict[str, Any]) -> ProviderUser:
    emails = data.get("email_addresses") or []
    email = emails[0].get("email_address") if emails and isinstance(emails[0], dict) else None
    return ProviderUser(
        id=str(data.get("id")),
        email=email,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        image_url=data.get("image_url"),
        public_metadata=data.get("public_metadata") or {},
    )


class StaticIdentityProvider:
    """In-memory identity provider for local development and tests.

    Provider tokens are registered explicitly with :meth:`add_token`; users
    and passwords with :meth:`add_user`. Setting ``available`` to False makes
    every call raise :class:`ProviderUnavailable`.
    """

    def __init__(self) -> None:
        self._users: Dict[str, ProviderUser] = {}
        self._passwords: Dict[str, str] = {}
        self._tokens: Dict[str, str] = {}
        self.available = True

    def add_user(self, user: ProviderUser, password: Optional[str] = None) -> ProviderUser:
        self._users[user.id] = user
        if password is not None:
            self._passwords[user.id] = password
        return user

    def add_token(self, token: str, external_id: str) -> None:
        self._tokens[token] = external_id

    def _check_available(self) -> None:
        if not self.available:
            raise ProviderUnavailable("static provider marked unavailable")

    async def introspect_token(self, token: str) -> Optional[str]:
        self._check_available()
        return self._tokens.get(token)

    async def get_user_metadata(self, external_id: str) -> Optional[ProviderUser]:
        self._check_available()
        return self._users.get(external_id)

    async def find_user_by_email(self, email: str) -> Optional[ProviderUser]:
        self._check_available()
        wanted = email.strip().lower()
        for user in self._users.values():
            if user.email and user.email.lower() == wanted:
                return user
        return None

    async def verify_password(self, user_id: str, password: str) -> bool:
        self._check_available()
        expected = self._passwords.get(user_id)
        return expected is not None and expected == password


_provider_lock: Lock = Lock()
_provider_instance: Optional[IdentityProvider] = None


def get_identity_provider() -> IdentityProvider:
    """Return the process-wide identity provider.

    Uses :class:`HttpIdentityProvider` when IDP_BASE_URL is configured and a
    :class:`StaticIdentityProvider` otherwise.
    """

    global _provider_instance
    if _provider_instance is not None:
        return _provider_instance

    with _provider_lock:
        if _provider_instance is None:
            if settings.idp_base_url:
                _provider_instance = HttpIdentityProvider(
                    settings.idp_base_url,
                    settings.idp_secret_key,
                    settings.idp_timeout_seconds,
                )
            else:
                logger.warning("IDP_BASE_URL is not set; using the in-memory identity provider.")
                _provider_instance = StaticIdentityProvider()

    return _provider_instance


def set_identity_provider(provider: Optional[IdentityProvider]) -> None:
    """Replace the process-wide provider (``None`` resets to lazy default)."""

    global _provider_instance
    with _provider_lock:
        _provider_instance = provider
