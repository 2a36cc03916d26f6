"""
PostgreSQL database configuration and session management
"""

import logging
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Pool and driver options for the configured database URL"""
    if not url.startswith("postgresql"):
        return {"echo": settings.DEBUG}

    return {
        "poolclass": QueuePool,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
        "connect_args": {
            "connect_timeout": 30,
            "application_name": "EventPass-Backend",
        },
        "echo": settings.DEBUG,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))


if engine.dialect.name == "postgresql":
    @event.listens_for(engine, "connect")
    def set_postgresql_timeouts(dbapi_connection, connection_record):
        """Bound lock waits so a contended product row cannot stall a purchase forever"""
        try:
            with dbapi_connection.cursor() as cursor:
                cursor.execute(f"SET lock_timeout = '{settings.DB_LOCK_TIMEOUT}'")
                cursor.execute(f"SET statement_timeout = '{settings.DB_STATEMENT_TIMEOUT}'")
        except Exception as e:
            logger.warning(f"Failed to apply PostgreSQL timeouts: {e}")


# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create base class for models
Base = declarative_base()


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class DatabaseManager:
    """Database management utilities"""

    @staticmethod
    def create_all_tables():
        """Create all database tables"""
        Base.metadata.create_all(bind=engine)

    @staticmethod
    def get_session():
        """Get a new database session"""
        return SessionLocal()

    @staticmethod
    def ping() -> bool:
        """Check the database answers a trivial query"""
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    @staticmethod
    def get_pool_status():
        """Get connection pool status for monitoring"""
        pool = engine.pool
        if not isinstance(pool, QueuePool):
            return {"pool": type(pool).__name__}
        return {
            "pool_size": pool.size(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
            "checked_in": pool.checkedin()
        }
