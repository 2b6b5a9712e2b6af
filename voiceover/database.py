from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from voiceover.config import get_settings

settings = get_settings()
if not settings.database_url:
    raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

# SQLite connections are shared across the request threadpool
connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()
