"""
Engine SQLAlchemy et fabrique de sessions.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from adaptive_scraper.core.config import DATABASE_URL, DATA_DIR


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Jobs rq et threads du worker partagent le fichier
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


if DATABASE_URL.startswith("sqlite:///./") or DATABASE_URL.startswith(f"sqlite:///{DATA_DIR}"):
    DATA_DIR.mkdir(parents=True, exist_ok=True)

engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_db_session():
    """Context manager pour obtenir une session DB."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind=None) -> None:
    """Crée les tables manquantes."""
    from adaptive_scraper.models import Base

    Base.metadata.create_all(bind=bind or engine)
