import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.school_backend.api.v1.routes_admin import router as admin_router_v1
from src.school_backend.api.v1.routes_attendance import router as attendance_router_v1
from src.school_backend.api.v1.routes_auth import router as auth_router_v1
from src.school_backend.api.v1.routes_dashboard import router as dashboard_router_v1
from src.school_backend.api.v1.routes_exams import router as exams_router_v1
from src.school_backend.api.v1.routes_fees import router as fees_router_v1
from src.school_backend.api.v1.routes_notifications import router as notifications_router_v1
from src.school_backend.api.v1.routes_parents import router as parents_router_v1
from src.school_backend.api.v1.routes_students import router as students_router_v1
from src.school_backend.api.v1.routes_system import router as system_router_v1
from src.school_backend.api.v1.routes_teachers import router as teachers_router_v1
from src.school_backend.config import settings
from src.school_backend.infra.db.bootstrap import init_sql_repositories

logging.basicConfig(level=settings.log_level)

app = FastAPI(title="School Management API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    When USE_SQL_REPOS is enabled and a DATABASE_URL is configured, this
    switches every repository to its SQL-backed implementation. In other
    environments (tests, local dev without a database) this is a no-op and the
    in-memory repositories remain active.
    """

    init_sql_repositories()

# CORS configuration: permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness check for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(auth_router_v1, prefix="/api/v1")
app.include_router(students_router_v1, prefix="/api/v1")
app.include_router(parents_router_v1, prefix="/api/v1")
app.include_router(teachers_router_v1, prefix="/api/v1")
app.include_router(attendance_router_v1, prefix="/api/v1")
app.include_router(fees_router_v1, prefix="/api/v1")
app.include_router(exams_router_v1, prefix="/api/v1")
app.include_router(notifications_router_v1, prefix="/api/v1")
app.include_router(dashboard_router_v1, prefix="/api/v1")
app.include_router(admin_router_v1, prefix="/api/v1")
