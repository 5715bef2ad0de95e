# =============================================================================
# DATA ACCESS LAYER
# =============================================================================
"""
Single place where database calls get a timeout, retries and a fallback.

Every query function in ``bookings.queries`` hands its ORM or SQL work to
``run_query`` (raise on exhaustion) or ``safe_query`` (return the policy's
fallback). Call sites differ only in the ``QueryPolicy`` they pass.
"""
import dataclasses
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, InterfaceError, connection

from . import demo_data
from .exceptions import DatabaseUnavailable

# Logger
logger = logging.getLogger(__name__)

TIMEOUT_MARKERS = ("timeout", "timed out", "canceling statement", "database is locked")
CONNECTION_MARKERS = (
    "connection", "too many", "rate limit", "network", "econnrefused",
    "enotfound", "fetch failed", "failed to fetch", "could not connect",
    "server closed", "terminating",
)
CONSTRAINT_MARKERS = ("constraint", "foreign key", "unique", "violates")


# =============================================================================
# POLICY
# =============================================================================
@dataclass(frozen=True)
class QueryPolicy:
    """Timeout, retry and fallback behaviour for one call site."""
    timeout: Optional[float] = 15.0
    retries: int = 2
    backoff_base: float = 1.0
    backoff_max: float = 10.0
    fallback: Any = None
    demo_dataset: Optional[str] = None

    @classmethod
    def default(cls, **overrides):
        conf = getattr(settings, 'QUERY_POLICY', {})
        values = {
            'timeout': conf.get('TIMEOUT', cls.timeout),
            'retries': conf.get('RETRIES', cls.retries),
            'backoff_base': conf.get('BACKOFF_BASE', cls.backoff_base),
            'backoff_max': conf.get('BACKOFF_MAX', cls.backoff_max),
        }
        values.update(overrides)
        return cls(**values)

    def replace(self, **changes):
        return dataclasses.replace(self, **changes)

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based), doubling up to the cap."""
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================
def classify_error(exc: BaseException) -> str:
    """Return 'constraint', 'timeout', 'connection' or 'unknown'."""
    if isinstance(exc, DatabaseUnavailable):
        return exc.kind
    if isinstance(exc, IntegrityError):
        return "constraint"

    message = str(exc).lower()
    if any(marker in message for marker in TIMEOUT_MARKERS):
        return "timeout"
    if any(marker in message for marker in CONNECTION_MARKERS):
        return "connection"
    if isinstance(exc, InterfaceError):
        return "connection"
    if any(marker in message for marker in CONSTRAINT_MARKERS):
        return "constraint"
    return "unknown"


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) in ("connection", "timeout")


# =============================================================================
# EXECUTION
# =============================================================================
@contextmanager
def statement_timeout(seconds: Optional[float]):
    """
    Abort statements that run longer than ``seconds`` (PostgreSQL only).

    Inside a transaction the limit is ``SET LOCAL`` and expires with it;
    otherwise it is set for the session and reset afterwards.
    """
    if not seconds or connection.vendor != 'postgresql':
        yield
        return

    millis = int(seconds * 1000)
    local = connection.in_atomic_block
    with connection.cursor() as cursor:
        cursor.execute(f"SET {'LOCAL ' if local else ''}statement_timeout = {millis}")
    try:
        yield
    finally:
        if not local and connection.is_usable():
            with connection.cursor() as cursor:
                cursor.execute("SET statement_timeout = DEFAULT")


def run_query(func: Callable, *args, policy: Optional[QueryPolicy] = None, **kwargs):
    """
    Call ``func(*args, **kwargs)`` under ``policy``.

    Transient failures (connection drops, timeouts) are retried with
    exponential back-off; anything else is raised at once. Retries are
    skipped inside an enclosing transaction, which is already broken by then.
    """
    policy = policy or QueryPolicy.default()
    attempt = 0

    while True:
        try:
            with statement_timeout(policy.timeout):
                return func(*args, **kwargs)
        except DatabaseError as exc:
            kind = classify_error(exc)
            if kind not in ("connection", "timeout"):
                raise
            if attempt >= policy.retries or connection.in_atomic_block:
                logger.error(f"Query {getattr(func, '__name__', func)} failed after {attempt + 1} attempt(s): {exc}")
                message = (
                    "Database query timed out. Please try again later."
                    if kind == "timeout" else None
                )
                raise DatabaseUnavailable(message, kind=kind) from exc

            delay = policy.backoff(attempt)
            logger.warning(
                f"Transient {kind} error in {getattr(func, '__name__', func)} "
                f"(attempt {attempt + 1}/{policy.retries + 1}), retrying in {delay}s: {exc}"
            )
            connection.close_if_unusable_or_obsolete()
            if delay:
                time.sleep(delay)
            attempt += 1


def safe_query(func: Callable, *args, policy: Optional[QueryPolicy] = None, **kwargs):
    """Like ``run_query`` but returns the policy fallback instead of raising."""
    policy = policy or QueryPolicy.default()
    try:
        return run_query(func, *args, policy=policy, **kwargs)
    except DatabaseError as exc:
        logger.error(f"Query {getattr(func, '__name__', func)} failed ({classify_error(exc)}): {exc}")
    except DatabaseUnavailable as exc:
        logger.error(f"Query {getattr(func, '__name__', func)} unavailable ({exc.kind}): {exc}")

    if settings.DEMO_MODE and policy.demo_dataset:
        logger.warning(f"Serving demo dataset '{policy.demo_dataset}' in place of live data")
        return demo_data.get_dataset(policy.demo_dataset)
    return policy.fallback


def execute_sql(sql: str, params=None, policy: Optional[QueryPolicy] = None) -> List[Dict[str, Any]]:
    """Run parameterized SQL and return the rows as dicts."""
    def _execute():
        with connection.cursor() as cursor:
            cursor.execute(sql, params or [])
            if cursor.description is None:
                return []
            columns = [column[0] for column in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    _execute.__name__ = 'execute_sql'
    return run_query(_execute, policy=policy)


def check_database_connection() -> Dict[str, Any]:
    """One short check of the database; never falls back to sample data."""
    policy = QueryPolicy.default(timeout=5.0, retries=0)
    try:
        execute_sql("SELECT 1 AS connection_test", policy=policy)
    except (DatabaseError, DatabaseUnavailable) as exc:
        logger.error(f"Database connection check failed: {exc}")
        return {
            "connected": False,
            "message": f"Database connection failed: {exc}",
            "isDemo": bool(settings.DEMO_MODE),
        }
    return {
        "connected": True,
        "message": "Database connection successful",
        "isDemo": False,
    }
