"""
FastAPI Blacklist Registry API Server

Provides REST API endpoints for the tenant-scoped blacklist registry:
entry lifecycle, search, activity logs and dashboard analytics.

The caller's user id arrives in the X-User-ID header, set by the upstream
session layer; an optional X-API-Key guards the whole API.

Usage:
    uvicorn api.server:app --reload --port 8000
"""

import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Security
from fastapi.responses import RedirectResponse, Response
from fastapi.security import APIKeyHeader
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from access_scope import role_for
from api.models import (
    ActivityLogListResponse,
    ActivityLogResponse,
    DashboardResponse,
    DeleteResponse,
    EntryCreateRequest,
    EntryListResponse,
    EntryResponse,
    EntryUpdateRequest,
    ErrorResponse,
    HealthResponse,
    RoleResponse,
    SearchResponse,
    StatusToggleRequest,
    SuggestionResponse,
)
from api.middleware import (
    setup_cors,
    setup_exception_handlers,
    RequestLoggingMiddleware,
)
from config_manager import get_config, ConfigManager
from database.activity import ActivityLogService
from database.blacklist_service import (
    BlacklistEntryService,
    EntryNotFoundOrDenied,
    EntryPatch,
    EntrySubmission,
)
from database.connection import DatabaseSessionProvider, DatabaseSettings, init_db, close_db
from database.dashboard_service import DashboardService
from database.filters import ActivityLogFilter, EntryFilter, Pagination
from database.models import BlacklistStatus
from database.monitoring import (
    check_health,
    configure_monitoring,
    get_db_metrics,
    get_slow_query_report,
)
from database.principals import load_principal
from database.search_service import SearchService
from log_utils import setup_logging
from security_logger import get_security_logger

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# Environment variables with defaults
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
CONFIG_PATH = os.getenv("CONFIG_PATH") or None
API_KEY = os.getenv("API_KEY", "")  # Required for all /api/v1 endpoints when set

# Global state
_db_provider: Optional[DatabaseSessionProvider] = None
_config: Optional[ConfigManager] = None
_startup_time: Optional[datetime] = None

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """Verify API key for protected endpoints.

    If API_KEY environment variable is not set, the check is disabled.
    """
    if not API_KEY:
        return "dev-mode"

    if not api_key:
        raise HTTPException(
            status_code=401, detail="Missing API key. Provide X-API-Key header."
        )

    if api_key != API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key


def get_principal_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-ID")) -> int:
    """Dependency extracting the authenticated caller's user id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-ID header")
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-User-ID header")


def get_db() -> DatabaseSessionProvider:
    """Dependency to get the database provider."""
    if _db_provider is None:
        raise HTTPException(
            status_code=503, detail="Database not initialized. Service is starting up."
        )
    return _db_provider


def get_config_instance() -> ConfigManager:
    """Dependency to get the config instance."""
    global _config
    if _config is None:
        _config = get_config(CONFIG_PATH)
    return _config


def get_entry_service(db: DatabaseSessionProvider = Depends(get_db)) -> BlacklistEntryService:
    return BlacklistEntryService(db)


def get_search_service(
    db: DatabaseSessionProvider = Depends(get_db),
    config: ConfigManager = Depends(get_config_instance),
) -> SearchService:
    return SearchService(db, suggestion_limit=config.pagination.suggestion_limit)


def get_activity_service(db: DatabaseSessionProvider = Depends(get_db)) -> ActivityLogService:
    return ActivityLogService(db)


def get_dashboard_service(
    db: DatabaseSessionProvider = Depends(get_db),
    config: ConfigManager = Depends(get_config_instance),
) -> DashboardService:
    return DashboardService(db, recent_activity_limit=config.pagination.recent_activity_limit)


def _pagination(page: int, limit: Optional[int], config: ConfigManager) -> Pagination:
    if limit is None:
        limit = config.pagination.default_limit
    return Pagination(page=page, limit=min(limit, config.pagination.max_limit))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration and open the record store for the app's lifetime."""
    global _db_provider, _config, _startup_time

    logger.info("Starting Blacklist Registry API...")
    _config = get_config_instance()
    setup_logging(_config.logging)
    configure_monitoring(
        slow_query_ms=_config.monitoring.slow_query_ms,
        notice_query_ms=_config.monitoring.notice_query_ms,
        prometheus=_config.monitoring.prometheus,
    )
    get_security_logger(
        log_dir=_config.security.log_dir,
        enable_console=_config.security.console,
    )

    if _db_provider is None:
        _db_provider = init_db(DatabaseSettings.from_config(_config.database))
        _db_provider.create_tables()
    _startup_time = datetime.now(timezone.utc)
    logger.info("Blacklist Registry API ready")

    yield

    logger.info("Shutting down Blacklist Registry API...")
    close_db()
    _db_provider = None


_app_config = get_config_instance()

# Create FastAPI application
app = FastAPI(
    title="Blacklist Registry API",
    description="Multi-tenant registry of flagged individuals with risk scoring",
    version=API_VERSION,
    docs_url="/api/docs" if _app_config.api.enable_docs else None,
    redoc_url="/api/redoc" if _app_config.api.enable_docs else None,
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Setup middleware
setup_cors(app, _app_config.api.cors_origins)
app.add_middleware(RequestLoggingMiddleware)
setup_exception_handlers(app)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Unknown or missing caller"},
    403: {"model": ErrorResponse, "description": "Caller has no company"},
    422: {"model": ErrorResponse, "description": "Validation error"},
    503: {"model": ErrorResponse, "description": "Record store unavailable"},
}
NOT_FOUND_RESPONSE = {404: {"model": ErrorResponse, "description": "Entry not found or access denied"}}


# ============================================
# BLACKLIST ENTRIES
# ============================================

@router.post(
    "/entries",
    response_model=EntryResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    summary="File a blacklist entry",
    description="Creates an entry under the caller's company. The risk score is derived from the reason and evidence.",
)
def create_entry(
    request: EntryCreateRequest,
    principal_id: int = Depends(get_principal_id),
    service: BlacklistEntryService = Depends(get_entry_service),
):
    entry = service.create(principal_id, EntrySubmission(**request.model_dump()))
    return EntryResponse.model_validate(entry)


@router.get(
    "/entries",
    response_model=EntryListResponse,
    responses=ERROR_RESPONSES,
    summary="List blacklist entries",
    description="Newest first. Non-admins only ever see their own company's entries.",
)
def list_entries(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    status: Optional[BlacklistStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    min_score: Optional[int] = Query(None, ge=0, le=100),
    max_score: Optional[int] = Query(None, ge=0, le=100),
    company_id: Optional[int] = Query(None, description="Admins only; ignored for other callers"),
    principal_id: int = Depends(get_principal_id),
    service: BlacklistEntryService = Depends(get_entry_service),
    config: ConfigManager = Depends(get_config_instance),
):
    pagination = _pagination(page, limit, config)
    filters = EntryFilter(
        company_id=company_id,
        date_from=date_from,
        date_to=date_to,
        status=status,
        search=search,
        min_score=min_score,
        max_score=max_score,
    )
    entries, total = service.list_entries(principal_id, filters, pagination)
    return EntryListResponse(
        entries=[EntryResponse.model_validate(entry) for entry in entries],
        total=total,
        page=pagination.page,
        limit=pagination.limit,
    )


@router.get(
    "/entries/{entry_id}",
    response_model=EntryResponse,
    responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
    summary="Get a blacklist entry",
)
def get_entry(
    entry_id: int,
    principal_id: int = Depends(get_principal_id),
    service: BlacklistEntryService = Depends(get_entry_service),
):
    entry = service.get(principal_id, entry_id)
    if entry is None:
        raise EntryNotFoundOrDenied(entry_id)
    return EntryResponse.model_validate(entry)


@router.patch(
    "/entries/{entry_id}",
    response_model=EntryResponse,
    responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
    summary="Update a blacklist entry",
    description="Partial update: omitted keys are untouched; null clears phone, email or face image.",
)
def update_entry(
    entry_id: int,
    request: EntryUpdateRequest,
    principal_id: int = Depends(get_principal_id),
    service: BlacklistEntryService = Depends(get_entry_service),
):
    entry = service.update(principal_id, entry_id, EntryPatch(**request.provided()))
    return EntryResponse.model_validate(entry)


@router.delete(
    "/entries/{entry_id}",
    response_model=DeleteResponse,
    responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
    summary="Delete a blacklist entry",
)
def delete_entry(
    entry_id: int,
    principal_id: int = Depends(get_principal_id),
    service: BlacklistEntryService = Depends(get_entry_service),
):
    return DeleteResponse(success=service.delete(principal_id, entry_id))


@router.post(
    "/entries/{entry_id}/status",
    response_model=EntryResponse,
    responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
    summary="Set the blacklist flag",
    description="true sets status active, false sets status inactive.",
)
def toggle_status(
    entry_id: int,
    request: StatusToggleRequest,
    principal_id: int = Depends(get_principal_id),
    service: BlacklistEntryService = Depends(get_entry_service),
):
    entry = service.toggle_status(principal_id, entry_id, request.is_blacklisted)
    return EntryResponse.model_validate(entry)


# ============================================
# SEARCH
# ============================================

@router.get(
    "/search",
    response_model=SearchResponse,
    responses=ERROR_RESPONSES,
    summary="Search blacklist entries",
    description="Substring match on name, id number, email and phone.",
)
def search_entries(
    query: Optional[str] = Query(None, max_length=200),
    company_id: Optional[int] = Query(None),
    status: Optional[BlacklistStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    principal_id: int = Depends(get_principal_id),
    service: SearchService = Depends(get_search_service),
):
    entries, total = service.search(
        principal_id,
        query=query,
        company_id=company_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return SearchResponse(
        entries=[EntryResponse.model_validate(entry) for entry in entries],
        total=total,
    )


@router.get(
    "/search/suggestions",
    response_model=List[SuggestionResponse],
    summary="Type-ahead suggestions",
)
def search_suggestions(
    query: str = Query("", max_length=200),
    principal_id: int = Depends(get_principal_id),
    service: SearchService = Depends(get_search_service),
):
    return [SuggestionResponse(**s.to_dict()) for s in service.suggestions(principal_id, query)]


# ============================================
# ACTIVITY LOGS
# ============================================

def _activity_filters(
    user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None, max_length=50),
    resource_type: Optional[str] = Query(None, max_length=100),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    company_id: Optional[int] = Query(None, description="Admins only; ignored for other callers"),
) -> ActivityLogFilter:
    return ActivityLogFilter(
        company_id=company_id,
        date_from=date_from,
        date_to=date_to,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
    )


@router.get(
    "/activity-logs",
    response_model=ActivityLogListResponse,
    responses=ERROR_RESPONSES,
    summary="List activity logs",
)
def list_activity_logs(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    filters: ActivityLogFilter = Depends(_activity_filters),
    principal_id: int = Depends(get_principal_id),
    service: ActivityLogService = Depends(get_activity_service),
    config: ConfigManager = Depends(get_config_instance),
):
    pagination = _pagination(page, limit, config)
    logs, total = service.list_logs(principal_id, filters, pagination)
    return ActivityLogListResponse(
        logs=[ActivityLogResponse.model_validate(log) for log in logs],
        total=total,
        page=pagination.page,
        limit=pagination.limit,
    )


@router.get(
    "/activity-logs/export",
    responses={**ERROR_RESPONSES, 200: {"content": {"text/csv": {}}}},
    summary="Export activity logs as CSV",
)
def export_activity_logs(
    filters: ActivityLogFilter = Depends(_activity_filters),
    principal_id: int = Depends(get_principal_id),
    service: ActivityLogService = Depends(get_activity_service),
):
    content = service.export_csv(principal_id, filters)
    filename = f"activity_logs_{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ============================================
# DASHBOARD & ACCOUNT
# ============================================

@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    responses=ERROR_RESPONSES,
    summary="Dashboard analytics",
)
def dashboard(
    principal_id: int = Depends(get_principal_id),
    service: DashboardService = Depends(get_dashboard_service),
):
    return DashboardResponse.model_validate(service.analytics(principal_id).to_dict())


@router.get(
    "/me/role",
    response_model=RoleResponse,
    responses=ERROR_RESPONSES,
    summary="Role and permissions of the caller",
)
def my_role(
    principal_id: int = Depends(get_principal_id),
    db: DatabaseSessionProvider = Depends(get_db),
):
    with db.get_unit_of_work() as uow:
        principal = load_principal(uow.session, principal_id, get_security_logger(), "me.role")
    role, permissions = role_for(principal)
    return RoleResponse(role=role, permissions=permissions)


app.include_router(router)


@app.get(
    "/api/v1/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Reports record store connectivity and pool statistics.",
)
def health_check(db: DatabaseSessionProvider = Depends(get_db)):
    status = check_health(db.engine, db.session_factory)
    uptime = None
    if _startup_time:
        uptime = int((datetime.now(timezone.utc) - _startup_time).total_seconds())
    return HealthResponse(
        status="healthy" if status.healthy else "unhealthy",
        database=status.to_dict(),
        version=API_VERSION,
        uptime_seconds=uptime,
    )


@app.get(
    "/api/v1/metrics/queries",
    summary="Query statistics",
    description="Per-operation timing collected by the repositories, plus operations with slow queries.",
)
def query_metrics():
    return {"stats": get_db_metrics(), "slow_queries": get_slow_query_report()}


@app.get("/metrics", include_in_schema=False)
def prometheus_metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Root redirect to docs
@app.get("/", include_in_schema=False)
async def root():
    """Redirect root to API documentation."""
    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
