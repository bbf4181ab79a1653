from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def storage_url(database_url: str, password: Optional[str] = None) -> URL:
    url = make_url(database_url)
    if password:
        url = url.set(password=password)
    return url


def create_storage_engine(database_url: str, password: Optional[str] = None) -> Engine:
    url = storage_url(database_url, password)
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.drivername.startswith("sqlite") else {}
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
