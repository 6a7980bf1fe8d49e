"""
Database connection and session management.
"""
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from crm_billing.core.config import DATABASE_DSN

logger = logging.getLogger(__name__)

if not DATABASE_DSN:
    raise ValueError("DATABASE_DSN not configured. Create crm_billing/config_local.py from config_local.example.py")


def build_engine(dsn: str):
    """Create an engine with pool settings suited to the backend."""
    if dsn.startswith("sqlite"):
        return create_engine(
            dsn,
            echo=False,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        dsn,
        isolation_level="READ COMMITTED",  # Overlap check and write share one transaction
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_size=10,
        max_overflow=20,
        pool_timeout=60,
        echo=False,  # Set to True for SQL debugging
        connect_args={
            "connect_timeout": 30,
            "read_timeout": 60,
            "write_timeout": 60,
        } if "pymysql" in dsn else {}
    )


engine = build_engine(DATABASE_DSN)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        try:
            db.close()
        except Exception as e:
            # Connection may already be gone; nothing left to release
            logger.warning(f"Error closing database session (connection may be lost): {str(e)}")
