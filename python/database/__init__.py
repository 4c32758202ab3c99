"""
Database Package for the Blacklist Registry

This package provides:
- SQLAlchemy ORM models for users, companies, blacklist entries and activity logs
- Session provider and Unit of Work pattern for transaction management
- Repository pattern for data access (the storage port of the services)
- Tenant-scoped services: entry lifecycle, search, dashboard, activity logs
- Performance monitoring and query timing
"""

from database.models import (
    Base,
    User,
    Company,
    BlacklistEntry,
    BlacklistStatus,
    ActivityLog,
    ActivityAction,
)
from database.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    UnitOfWork,
    init_db,
    close_db,
    create_test_provider,
)
from database.monitoring import (
    query_timer,
    timed_query,
    get_db_metrics,
    get_slow_query_report,
    reset_metrics,
    configure_monitoring,
    check_health,
    HealthStatus,
)
from database.filters import (
    EntryFilter,
    ActivityLogFilter,
    Pagination,
    QueryFilterBuilder,
)
from database.activity import ActivityRecorder, ActivityLogService
from database.blacklist_service import (
    BlacklistEntryService,
    EntryNotFoundOrDenied,
    EntryPatch,
    EntrySubmission,
    UNSET,
)
from database.search_service import SearchService, Suggestion
from database.dashboard_service import DashboardService, DashboardAnalytics

__all__ = [
    # Models
    'Base',
    'User',
    'Company',
    'BlacklistEntry',
    'BlacklistStatus',
    'ActivityLog',
    'ActivityAction',
    # Database provider
    'DatabaseSessionProvider',
    'DatabaseSettings',
    'UnitOfWork',
    'init_db',
    'close_db',
    'create_test_provider',
    # Monitoring
    'query_timer',
    'timed_query',
    'get_db_metrics',
    'get_slow_query_report',
    'reset_metrics',
    'configure_monitoring',
    'check_health',
    'HealthStatus',
    # Filtering
    'EntryFilter',
    'ActivityLogFilter',
    'Pagination',
    'QueryFilterBuilder',
    # Services
    'ActivityRecorder',
    'ActivityLogService',
    'BlacklistEntryService',
    'EntryNotFoundOrDenied',
    'EntryPatch',
    'EntrySubmission',
    'UNSET',
    'SearchService',
    'Suggestion',
    'DashboardService',
    'DashboardAnalytics',
]
