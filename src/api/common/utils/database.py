import os
from fastapi.logger import logger
from sqlalchemy import create_engine
from sqlmodel import Session


def _get_database_url_from_env_vars():
    DB_SCHEME = os.getenv("DB_SCHEME", "postgresql")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "billing")
    return f"{DB_SCHEME}://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


def get_database_url():
    url = os.getenv("DATABASE_URL", _get_database_url_from_env_vars())
    logger.info(f"Using database at {url.rsplit('@', 1)[-1]}")
    return url


def _get_connect_args(url: str) -> dict:
    # SQLite connections are shared between the request threadpool workers
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    echo=os.getenv("ENV") not in ("production", "test"),
    connect_args=_get_connect_args(DATABASE_URL),
)


def get_db():
    with Session(engine) as session:
        yield session
