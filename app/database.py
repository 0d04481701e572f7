import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

load_dotenv()

Base = declarative_base()


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("DATABASE_URL", "sqlite:///./journal.db")
    # Ensure psycopg (v3) driver is used
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    return url


DATABASE_URL = get_database_url()


def get_engine(url: str = None):
    """Get or create database engine."""
    url = url or DATABASE_URL
    kwargs = {"echo": os.getenv("DEBUG", "false").lower() == "true"}
    if url.startswith("sqlite"):
        # Background summary jobs touch the session factory off the request thread
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


engine = get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Create tables for SQLite dev databases; Postgres is migrated by Alembic."""
    bind = bind or engine
    if str(bind.url).startswith("sqlite"):
        # Import models so they register with Base.metadata
        import app.models  # noqa: F401

        Base.metadata.create_all(bind=bind)


def get_db():
    """Dependency for FastAPI routes to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
