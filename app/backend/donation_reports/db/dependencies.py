"""Database dependencies for FastAPI endpoints."""

from collections.abc import Generator

from sqlalchemy.orm import Session


def get_db_session() -> Generator[Session, None, None]:
    """Yield a transactional SQLAlchemy session."""

    from donation_reports.db.session import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
