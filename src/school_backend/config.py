from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Locally-issued (mobile client) tokens are HMAC-signed JWTs.
    jwt_secret: str = os.getenv("JWT_SECRET", "change-me-in-production")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    # Default lifetime of a locally-issued token: seven days.
    jwt_expires_minutes: int = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

    # External identity provider (web client tokens, login, user metadata).
    # When IDP_BASE_URL is unset the in-memory StaticIdentityProvider is used.
    idp_base_url: Optional[str] = os.getenv("IDP_BASE_URL")
    idp_secret_key: Optional[str] = os.getenv("IDP_SECRET_KEY")
    # Upper bound for any single call to the identity provider. A provider
    # that does not answer in time yields 503 instead of hanging the request.
    idp_timeout_seconds: float = float(os.getenv("IDP_TIMEOUT_SECONDS", "5"))

    # When true, ProfileNotFound is presented to callers as 403 Forbidden so
    # that the existence of a verified-but-unprovisioned identity is not
    # disclosed. Audit logs always record the precise failure kind.
    mask_profile_not_found: bool = os.getenv("MASK_PROFILE_NOT_FOUND", "false").lower() == "true"

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # CORS configuration: comma-separated origins. Default is "*" which is
    # acceptable for local development but should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
