from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import os
import logging

from typehub.config import IS_SERVERLESS

logger = logging.getLogger(__name__)

# Priority: Vercel Postgres > Local Postgres > SQLite (in-memory for serverless) > SQLite (file-based for local)
POSTGRES_URL = os.getenv("POSTGRES_URL")  # Vercel Postgres connection string
DATABASE_URL = os.getenv("DATABASE_URL")  # Generic database URL (can be Postgres or SQLite)


def _normalize_postgres_url(url: str) -> str:
    # SQLAlchemy prefers postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


# Determine which database to use
if POSTGRES_URL:
    SQLALCHEMY_DATABASE_URL = _normalize_postgres_url(POSTGRES_URL)
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        echo=False,
        pool_pre_ping=True,  # Verify connections before using them
        pool_recycle=300,  # Recycle connections after 5 minutes
    )
    logger.info("Using Vercel Postgres database")
elif DATABASE_URL and DATABASE_URL.startswith("postgres"):
    SQLALCHEMY_DATABASE_URL = _normalize_postgres_url(DATABASE_URL)
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
    )
    logger.info("Using PostgreSQL database")
elif IS_SERVERLESS:
    # Fallback to in-memory SQLite for serverless (not recommended for production)
    SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
    # StaticPool: all connections share the same in-memory DB
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    logger.warning("Using in-memory SQLite (data will not persist - configure Postgres for production)")
else:
    # Use file-based SQLite for local development
    SQLALCHEMY_DATABASE_URL = DATABASE_URL or "sqlite:///./typehub.db"
    connect_args = {}
    if "sqlite" in SQLALCHEMY_DATABASE_URL:
        connect_args = {"check_same_thread": False}
    engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
    logger.info("Using SQLite database (local development)")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
