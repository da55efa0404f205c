"""SEOPULSE — Database Engine & Session Factory.

PostgreSQL in production, SQLite as the local fallback. The metrics store
relies on ON CONFLICT upserts, which both dialects support.
"""

from sqlalchemy import event, text
from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, Session, create_engine

from seopulse.config import settings
from seopulse.core.logging import get_logger

logger = get_logger("database")


def _mask_url(url: str) -> str:
    """Database URL with the password hidden."""
    return make_url(url).render_as_string(hide_password=True)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": False, "connect_args": {"check_same_thread": False}}
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
    }


def build_engine(url: str) -> Engine:
    backend = "SQLite" if url.startswith("sqlite") else "PostgreSQL"
    logger.info(f"📦 Database backend: {backend} ({_mask_url(url)})")
    built = create_engine(url, **_engine_kwargs(url))

    if backend == "SQLite":
        # Metric and grant rows reference sites; SQLite only checks that when asked
        @event.listens_for(built, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return built


engine = build_engine(settings.effective_database_url)


def test_connection() -> bool:
    """SELECT 1 against the configured database."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection OK")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        return False


def init_db() -> None:
    """Create the site, metric, report and schedule tables."""
    import seopulse.models.tenant_models  # noqa: F401
    import seopulse.models.metric_models  # noqa: F401
    import seopulse.models.report_models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info(f"✅ {len(SQLModel.metadata.tables)} tables ready")


def get_session():
    """Dependency — yields a DB session."""
    with Session(engine) as session:
        yield session
