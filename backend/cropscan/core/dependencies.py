from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from cropscan.core.config import get_settings
from cropscan.errors import StoreError
from cropscan.services.ai.common import router as ai_router
from cropscan.services.ai.crop_analysis.service import CropAnalysisGateway
from cropscan.services.detection_store import DetectionStore

settings = get_settings()


def build_engine(database_url: str):
    connect_args: dict[str, object] = {}

    if database_url.startswith("sqlite"):
        # Store calls run in the threadpool; connections cross threads and wait on locks.
        connect_args = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    return engine


engine = build_engine(settings.database_url) if settings.database_url else None

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None


def get_detection_store() -> DetectionStore:
    if SessionLocal is None:
        raise StoreError("DATABASE_URL is not configured")
    return DetectionStore(SessionLocal)


def optional_detection_store() -> Optional[DetectionStore]:
    """Like ``get_detection_store`` but None when no database is configured."""
    if SessionLocal is None:
        return None
    return DetectionStore(SessionLocal)


def get_gateway() -> CropAnalysisGateway:
    """A fresh gateway per request; configuration is resolved from settings here, not inside it."""
    return CropAnalysisGateway(ai_router.resolve(get_settings()))
