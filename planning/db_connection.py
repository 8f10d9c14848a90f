# planning/db_connection.py
import logging
from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from planning import settings
from planning.entities import Base

logger = logging.getLogger("planning_backend")


def build_database_url() -> str:
    # !###############################################
    # !   EITHER A DATABASE_URL IN THE .ENV FILE OR
    # !   THE DB_* VARIABLES FOR A POSTGRES SERVER
    # !###############################################
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    if settings.IS_LOCAL_DB:
        return "sqlite:///planning.db"
    return (
        f"postgresql+pg8000://{settings.DB_USER}:{settings.DB_PASSWORD}"
        f"@{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}"
    )


class Connection:
    def __init__(self, url: str | None = None) -> None:
        self.DATABASE_URL = url or build_database_url()
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            url = self.DATABASE_URL
            if url.startswith("sqlite"):
                logger.info(f"[DB] Using SQLite URL: {url}")
                kwargs = {"connect_args": {"check_same_thread": False}}
                if url in ("sqlite://", "sqlite:///:memory:"):
                    # one shared in-memory database for every session
                    kwargs["poolclass"] = StaticPool
                self._engine = create_engine(url, future=True, **kwargs)
            else:
                logger.info(f"[DB] Connecting to {self._redacted_url()}")
                self._engine = create_engine(
                    url,
                    future=True,
                    pool_pre_ping=True,
                    connect_args={"timeout": 10},  # pg8000, seconds
                )
        return self._engine

    def _redacted_url(self) -> str:
        return self.engine_url_without_password(self.DATABASE_URL)

    @staticmethod
    def engine_url_without_password(url: str) -> str:
        if "@" not in url or "://" not in url:
            return url
        scheme, rest = url.split("://", 1)
        creds, host = rest.rsplit("@", 1)
        user = creds.split(":", 1)[0]
        return f"{scheme}://{user}:***@{host}"

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    # -------- SQLAlchemy Session factory --------
    def build_db_session_factory(self) -> Callable[[], Session]:
        if self._sessionmaker is None:
            self._sessionmaker = sessionmaker(
                bind=self.engine,
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
                future=True,
            )

        def _factory() -> Session:
            return self._sessionmaker()

        return _factory
