from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fulfillment.core_settings import get_settings
from fulfillment.domain.models import Base

def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        return create_engine(url, echo=False, future=True,
                             connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, echo=False, future=True, pool_pre_ping=True)

settings = get_settings()
engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

def get_engine() -> Engine:
    return engine

def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_models():
    Base.metadata.create_all(engine)
