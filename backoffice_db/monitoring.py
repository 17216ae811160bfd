"""
Query timing and store health for the back office.

Repository read paths are wrapped in `timed_query("<repo>.<operation>")`.
Each call lands in three places:
- an in-process QueryStatsCollector, served as `queryStats` by /health
- Prometheus histograms/counters, served by /api/metrics
- the log, when the call crosses the warning or slow threshold

Thresholds come from the `monitoring` section of config.yaml through
`configure_monitoring` at startup.
"""

import logging
import time
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from typing import Optional, Dict, Any, List, Callable

from prometheus_client import Histogram, Counter, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text

logger = logging.getLogger(__name__)


# ============================================
# SETTINGS
# ============================================

@dataclass
class MonitoringConfig:
    slow_query_threshold_ms: float = 1000.0
    warning_threshold_ms: float = 500.0
    enable_prometheus: bool = True
    enable_logging: bool = True


_config = MonitoringConfig()


def configure_monitoring(
    slow_query_threshold_ms: float = 1000.0,
    warning_threshold_ms: float = 500.0,
    enable_prometheus: bool = True,
    enable_logging: bool = True
) -> None:
    """
    Replace the active thresholds. Called with no arguments it restores
    the defaults.

    Args:
        slow_query_threshold_ms: Calls slower than this count as slow and log a warning
        warning_threshold_ms: Calls slower than this log at INFO
        enable_prometheus: Feed the Prometheus metrics and serve /api/metrics
        enable_logging: Emit the threshold log lines
    """
    global _config
    _config = MonitoringConfig(
        slow_query_threshold_ms=slow_query_threshold_ms,
        warning_threshold_ms=warning_threshold_ms,
        enable_prometheus=enable_prometheus,
        enable_logging=enable_logging
    )


def get_monitoring_config() -> MonitoringConfig:
    return _config


# ============================================
# PROMETHEUS
# ============================================

QUERY_SECONDS = Histogram(
    'backoffice_db_query_duration_seconds',
    'Time spent in back-office repository calls',
    ['operation', 'status'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

QUERY_CALLS = Counter(
    'backoffice_db_query_total',
    'Back-office repository calls by outcome',
    ['operation', 'status']
)

SLOW_QUERY_CALLS = Counter(
    'backoffice_db_slow_queries_total',
    'Back-office repository calls over the slow threshold',
    ['operation']
)


def render_prometheus_metrics() -> tuple:
    """(payload, content type) for the default registry in text exposition format."""
    return generate_latest(), CONTENT_TYPE_LATEST


# ============================================
# IN-PROCESS STATS
# ============================================

@dataclass
class QueryStats:
    """Running totals for one operation name."""
    operation: str
    count: int = 0
    total_time_ms: float = 0.0
    min_time_ms: Optional[float] = None
    max_time_ms: float = 0.0
    errors: int = 0
    slow_queries: int = 0
    last_executed: Optional[datetime] = None

    @property
    def avg_time_ms(self) -> float:
        if not self.count:
            return 0.0
        return self.total_time_ms / self.count

    def add(self, duration_ms: float, error: bool, slow: bool) -> None:
        self.count += 1
        self.total_time_ms += duration_ms
        if self.min_time_ms is None or duration_ms < self.min_time_ms:
            self.min_time_ms = duration_ms
        if duration_ms > self.max_time_ms:
            self.max_time_ms = duration_ms
        self.errors += int(error)
        self.slow_queries += int(slow)
        self.last_executed = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'count': self.count,
            'total_time_ms': round(self.total_time_ms, 2),
            'avg_time_ms': round(self.avg_time_ms, 2),
            'min_time_ms': round(self.min_time_ms or 0.0, 2),
            'max_time_ms': round(self.max_time_ms, 2),
            'errors': self.errors,
            'slow_queries': self.slow_queries,
            'last_executed': self.last_executed.isoformat() if self.last_executed else None
        }


class QueryStatsCollector:
    """QueryStats per operation, guarded by a lock (routes run in a threadpool)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_operation: Dict[str, QueryStats] = {}
        self._since = datetime.now()

    def record(self, operation: str, duration_ms: float, error: bool = False, slow: bool = False) -> None:
        with self._lock:
            stats = self._by_operation.setdefault(operation, QueryStats(operation=operation))
            stats.add(duration_ms, error, slow)

    def get_stats(self, operation: Optional[str] = None) -> Dict[str, Any]:
        """
        Args:
            operation: One operation name; omit for the full summary

        Returns:
            That operation's totals ({} if never seen), or
            {"uptime_seconds", "operations": {name: totals}}
        """
        with self._lock:
            if operation:
                stats = self._by_operation.get(operation)
                return stats.to_dict() if stats else {}
            return {
                'uptime_seconds': (datetime.now() - self._since).total_seconds(),
                'operations': {name: stats.to_dict() for name, stats in self._by_operation.items()}
            }

    def get_slow_queries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [stats.to_dict() for stats in self._by_operation.values() if stats.slow_queries]

    def reset(self) -> None:
        with self._lock:
            self._by_operation.clear()
            self._since = datetime.now()


_collector = QueryStatsCollector()


def get_db_metrics() -> Dict[str, Any]:
    return _collector.get_stats()


def get_slow_query_report() -> List[Dict[str, Any]]:
    """Totals for every operation that has been slow at least once."""
    return _collector.get_slow_queries()


def reset_metrics() -> None:
    """Clear the in-process stats. Prometheus series are cumulative and are not touched."""
    _collector.reset()


# ============================================
# TIMERS
# ============================================

def _report(operation: str, duration_ms: float, failed: bool) -> None:
    slow = duration_ms > _config.slow_query_threshold_ms
    _collector.record(operation, duration_ms, error=failed, slow=slow)

    if _config.enable_prometheus:
        outcome = "error" if failed else "success"
        QUERY_SECONDS.labels(operation=operation, status=outcome).observe(duration_ms / 1000)
        QUERY_CALLS.labels(operation=operation, status=outcome).inc()
        if slow:
            SLOW_QUERY_CALLS.labels(operation=operation).inc()

    if not _config.enable_logging:
        return
    if slow:
        logger.warning(
            "SLOW QUERY: %s took %.2fms (threshold %.0fms)",
            operation, duration_ms, _config.slow_query_threshold_ms
        )
    elif duration_ms > _config.warning_threshold_ms and not failed:
        logger.info("Query %s took %.2fms", operation, duration_ms)


@contextmanager
def query_timer(operation: str):
    """
    Time the enclosed block under `operation`. Exceptions are counted as
    errors and re-raised unchanged.

    Usage:
        with query_timer("accounts.balance"):
            balance = repo.get_account_balance(account_id)
    """
    started = time.perf_counter()
    failed = False
    try:
        yield
    except Exception:
        failed = True
        raise
    finally:
        _report(operation, (time.perf_counter() - started) * 1000, failed)


def timed_query(operation: str):
    """Decorator form of query_timer for repository methods."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            with query_timer(operation):
                return func(*args, **kwargs)
        return wrapper
    return decorator


# ============================================
# HEALTH
# ============================================

@dataclass
class HealthStatus:
    healthy: bool
    latency_ms: float
    dialect: Optional[str] = None
    foreign_keys: Optional[bool] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'healthy': self.healthy,
            'latency_ms': round(self.latency_ms, 2),
            'dialect': self.dialect,
            'foreign_keys': self.foreign_keys,
            'error': self.error,
            'timestamp': self.timestamp.isoformat()
        }


def check_health(engine, session_factory) -> HealthStatus:
    """
    Round-trip a SELECT 1 and, on SQLite, confirm foreign key enforcement
    is on for the connection. Never raises; failures come back as
    `healthy=False` with the error text.
    """
    started = time.perf_counter()

    def elapsed() -> float:
        return (time.perf_counter() - started) * 1000

    try:
        session = session_factory()
        try:
            session.execute(text("SELECT 1"))
            foreign_keys = None
            if engine.dialect.name == "sqlite":
                foreign_keys = bool(session.execute(text("PRAGMA foreign_keys")).scalar())
        finally:
            session.close()
    except Exception as e:
        logger.error("Store health check failed: %s", e)
        return HealthStatus(healthy=False, latency_ms=elapsed(), error=str(e))

    return HealthStatus(
        healthy=True,
        latency_ms=elapsed(),
        dialect=engine.dialect.name,
        foreign_keys=foreign_keys
    )
