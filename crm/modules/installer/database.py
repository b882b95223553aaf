"""
Direct Postgres access to a freshly provisioned project: schema migration and
readiness probes. Credentials arrive per request and are never stored.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from crm.config import settings
from crm.core.errors import StorageNotReadyError
from crm.core.retry import connect_with_retry

logger = logging.getLogger(__name__)

STORAGE_READY_SQL = "select (to_regclass('storage.buckets') is not null) as ready"
SCHEMA_APPLIED_SQL = "select (to_regclass('public.organizations') is not null) as ready"
ORGANIZATION_COUNT_SQL = "select count(*) from public.organizations where deleted_at is null"
ADMIN_COUNT_SQL = "select count(*) from public.profiles where role = 'admin'"

CONNECT_TIMEOUT_SECONDS = 10


def normalize_db_url(db_url: str) -> str:
    """psycopg driver URL; TLS is required unless the URL opts out with sslmode=disable."""
    url = make_url(db_url.strip())
    sslmode = url.query.get("sslmode")
    if isinstance(sslmode, tuple):
        sslmode = sslmode[-1]
    query = dict(url.query)
    # require = encrypt without verifying the chain; proxies on some networks re-sign it
    query["sslmode"] = "disable" if (sslmode or "").lower() == "disable" else "require"
    url = url.set(drivername="postgresql+psycopg", query=query)
    return url.render_as_string(hide_password=False)


def create_db_engine(db_url: str) -> Engine:
    return create_engine(
        normalize_db_url(db_url),
        poolclass=NullPool,
        connect_args={"connect_timeout": CONNECT_TIMEOUT_SECONDS},
    )


def _rollback_quietly(conn: Connection) -> None:
    try:
        conn.rollback()
    except SQLAlchemyError as e:
        logger.debug("Rollback after failed probe raised: %s", e)


def wait_for_storage_ready(
    conn: Connection,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """Block until ``storage.buckets`` exists. Query errors count as "not yet"."""
    timeout = settings.storage_ready_timeout_seconds if timeout is None else timeout
    poll_interval = settings.storage_ready_poll_seconds if poll_interval is None else poll_interval
    deadline = clock() + timeout

    while clock() < deadline:
        try:
            ready = bool(conn.execute(text(STORAGE_READY_SQL)).scalar())
            if ready:
                logger.info("Storage schema is ready")
                return
            logger.debug("Storage schema not ready yet")
        except SQLAlchemyError as e:
            logger.debug("Storage readiness probe failed: %s", e)
            _rollback_quietly(conn)

        remaining = deadline - clock()
        if remaining <= 0:
            break
        sleep(min(poll_interval, remaining))

    raise StorageNotReadyError(
        "Supabase Storage is not ready yet (storage.buckets does not exist). "
        "Wait for the project to finish provisioning and try again."
    )


def load_schema_sql(schema_path: Optional[str] = None) -> str:
    return Path(schema_path or settings.schema_path).read_text(encoding="utf-8")


def run_schema_migration(
    db_url: str,
    schema_path: Optional[str] = None,
    engine_factory: Callable[[str], Engine] = create_db_engine,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Connect with retry, wait for storage, then apply the init script as one batch.

    The storage wait always runs, even when a health check already reported
    the schema as applied.
    """
    schema_sql = load_schema_sql(schema_path)

    engine, conn = connect_with_retry(
        lambda: engine_factory(db_url),
        max_attempts=settings.db_connect_max_attempts,
        initial_delay=settings.db_connect_initial_delay_seconds,
        sleep=sleep,
    )
    try:
        wait_for_storage_ready(conn, sleep=sleep)
        conn.exec_driver_sql(schema_sql, execution_options={"no_parameters": True})
        conn.commit()
        logger.info("Schema migration applied")
    finally:
        try:
            conn.close()
        finally:
            engine.dispose()


def check_database_health(
    db_url: str,
    engine_factory: Callable[[str], Engine] = create_db_engine,
) -> Dict[str, bool]:
    """Readiness flags probed over a single connection; any failure reads as all-false."""
    result = {"storageReady": False, "schemaApplied": False, "hasAdmin": False, "hasOrganization": False}
    engine = None
    try:
        engine = engine_factory(db_url)
        with engine.connect() as conn:
            storage_ready = bool(conn.execute(text(STORAGE_READY_SQL)).scalar())
            schema_applied = bool(conn.execute(text(SCHEMA_APPLIED_SQL)).scalar())
            has_organization = False
            has_admin = False
            if schema_applied:
                has_organization = int(conn.execute(text(ORGANIZATION_COUNT_SQL)).scalar() or 0) > 0
                has_admin = int(conn.execute(text(ADMIN_COUNT_SQL)).scalar() or 0) > 0
        result.update(
            storageReady=storage_ready,
            schemaApplied=schema_applied,
            hasAdmin=has_admin,
            hasOrganization=has_organization,
        )
    except Exception as e:
        logger.error("Database health check failed: %s", e)
    finally:
        if engine is not None:
            engine.dispose()
    return result
