"""
Repository call monitoring for the Blacklist Registry

Every repository method is wrapped with ``timed_query("<repository>.<method>")``.
Each call is:
- timed and folded into in-process statistics (served by /api/v1/metrics/queries)
- observed by Prometheus histograms labelled by repository and method
- logged when it crosses the notice or slow thresholds from config.yaml

Usage:
    from database.monitoring import timed_query

    @timed_query("blacklist.find_many")
    def find_many(self, conditions):
        ...
"""

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from prometheus_client import Counter, Histogram
from sqlalchemy import text

logger = logging.getLogger(__name__)

# Number of recent durations kept per operation for percentiles
RECENT_WINDOW = 200


@dataclass
class MonitoringSettings:
    """Thresholds applied to every repository call"""
    slow_query_ms: float = 1000.0
    notice_query_ms: float = 250.0
    prometheus: bool = True
    log_queries: bool = True


_settings = MonitoringSettings()


def configure_monitoring(
    slow_query_ms: float = 1000.0,
    notice_query_ms: float = 250.0,
    prometheus: bool = True,
    log_queries: bool = True
) -> None:
    """Replace the process-wide thresholds (called once at startup)."""
    global _settings
    _settings = MonitoringSettings(
        slow_query_ms=slow_query_ms,
        notice_query_ms=notice_query_ms,
        prometheus=prometheus,
        log_queries=log_queries
    )


# ============================================
# PROMETHEUS METRICS
# ============================================

repository_call_seconds = Histogram(
    'blacklist_registry_repository_call_seconds',
    'Repository call duration in seconds',
    ['repository', 'method', 'outcome'],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

repository_slow_calls_total = Counter(
    'blacklist_registry_repository_slow_calls_total',
    'Repository calls slower than the configured threshold',
    ['repository', 'method']
)


def _split_operation(operation: str) -> Tuple[str, str]:
    repository, _, method = operation.partition(".")
    return repository, method or "call"


# ============================================
# IN-PROCESS STATISTICS
# ============================================

@dataclass
class OperationStats:
    """Running totals for one repository method."""
    operation: str
    calls: int = 0
    failures: int = 0
    slow_calls: int = 0
    total_ms: float = 0.0
    recent_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=RECENT_WINDOW))
    last_call_at: Optional[datetime] = None

    def add(self, duration_ms: float, failed: bool, slow: bool) -> None:
        self.calls += 1
        self.total_ms += duration_ms
        self.recent_ms.append(duration_ms)
        self.last_call_at = datetime.now(timezone.utc)
        if failed:
            self.failures += 1
        if slow:
            self.slow_calls += 1

    def percentile(self, fraction: float) -> float:
        """Duration below which ``fraction`` of the recent calls fall."""
        if not self.recent_ms:
            return 0.0
        ordered = sorted(self.recent_ms)
        index = min(len(ordered) - 1, int(round(fraction * (len(ordered) - 1))))
        return ordered[index]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'calls': self.calls,
            'failures': self.failures,
            'slow_calls': self.slow_calls,
            'mean_ms': round(self.total_ms / self.calls, 2) if self.calls else 0.0,
            'p95_ms': round(self.percentile(0.95), 2),
            'max_recent_ms': round(max(self.recent_ms), 2) if self.recent_ms else 0.0,
            'last_call_at': self.last_call_at.isoformat() if self.last_call_at else None
        }


class CallStatistics:
    """Per-operation statistics shared by all request threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._operations: Dict[str, OperationStats] = {}
        self._since = datetime.now(timezone.utc)

    def add(self, operation: str, duration_ms: float, failed: bool, slow: bool) -> None:
        with self._lock:
            stats = self._operations.setdefault(operation, OperationStats(operation=operation))
            stats.add(duration_ms, failed, slow)

    def operation(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            stats = self._operations.get(name)
            return stats.to_dict() if stats else None

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'since': self._since.isoformat(),
                'operations': {name: stats.to_dict() for name, stats in sorted(self._operations.items())}
            }

    def slow_operations(self) -> List[Dict[str, Any]]:
        """Operations with at least one slow call, worst first."""
        with self._lock:
            slow = [stats for stats in self._operations.values() if stats.slow_calls]
            slow.sort(key=lambda stats: stats.slow_calls, reverse=True)
            return [stats.to_dict() for stats in slow]

    def clear(self) -> None:
        with self._lock:
            self._operations.clear()
            self._since = datetime.now(timezone.utc)


_statistics = CallStatistics()


def get_db_metrics() -> Dict[str, Any]:
    """Snapshot of every operation's statistics."""
    return _statistics.snapshot()


def get_operation_metrics(operation: str) -> Optional[Dict[str, Any]]:
    """Statistics of one operation, or None if it never ran."""
    return _statistics.operation(operation)


def get_slow_query_report() -> List[Dict[str, Any]]:
    return _statistics.slow_operations()


def reset_metrics() -> None:
    _statistics.clear()


# ============================================
# TIMING
# ============================================

def _observe(operation: str, duration: float, failed: bool) -> None:
    duration_ms = duration * 1000
    slow = duration_ms > _settings.slow_query_ms
    _statistics.add(operation, duration_ms, failed, slow)

    if _settings.prometheus:
        repository, method = _split_operation(operation)
        outcome = "error" if failed else "ok"
        repository_call_seconds.labels(repository=repository, method=method, outcome=outcome).observe(duration)
        if slow:
            repository_slow_calls_total.labels(repository=repository, method=method).inc()

    if not _settings.log_queries:
        return
    if slow:
        logger.warning(
            "Slow repository call: %s took %.1fms (threshold %.0fms)",
            operation, duration_ms, _settings.slow_query_ms
        )
    elif not failed and duration_ms > _settings.notice_query_ms:
        logger.info("Repository call %s took %.1fms", operation, duration_ms)


@contextmanager
def query_timer(operation: str):
    """
    Time the enclosed block as one repository call.

    Args:
        operation: "<repository>.<method>", e.g. "blacklist.find_many"
    """
    started = time.perf_counter()
    failed = False
    try:
        yield
    except Exception:
        failed = True
        raise
    finally:
        _observe(operation, time.perf_counter() - started, failed)


def timed_query(operation: str):
    """Decorator form of :func:`query_timer` for repository methods."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            with query_timer(operation):
                return func(*args, **kwargs)
        return wrapper
    return decorator


# ============================================
# HEALTH CHECK
# ============================================

@dataclass
class HealthStatus:
    """Result of one record-store probe."""
    healthy: bool
    latency_ms: float
    dialect: str = ""
    pool_size: int = 0
    pool_checked_out: int = 0
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'healthy': self.healthy,
            'latency_ms': round(self.latency_ms, 2),
            'dialect': self.dialect,
            'pool': {'size': self.pool_size, 'checked_out': self.pool_checked_out},
            'error': self.error,
            'checked_at': self.checked_at.isoformat()
        }


def _pool_stat(pool, name: str) -> int:
    # StaticPool (SQLite) exposes no sizing methods
    method = getattr(pool, name, None)
    return method() if callable(method) else 0


def check_health(engine, session_factory) -> HealthStatus:
    """
    Probe the record store with ``SELECT 1``.

    Never raises; a failed probe is reported as an unhealthy status.
    """
    started = time.perf_counter()
    try:
        with session_factory() as session:
            session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Record store health check failed: %s", e)
        return HealthStatus(
            healthy=False,
            latency_ms=(time.perf_counter() - started) * 1000,
            dialect=engine.dialect.name,
            error=str(e)
        )

    return HealthStatus(
        healthy=True,
        latency_ms=(time.perf_counter() - started) * 1000,
        dialect=engine.dialect.name,
        pool_size=_pool_stat(engine.pool, "size"),
        pool_checked_out=_pool_stat(engine.pool, "checkedout")
    )
