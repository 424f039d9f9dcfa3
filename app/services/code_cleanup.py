"""Periodic removal of consumed and expired one-time codes."""
import logging
from sqlalchemy.orm import Session
from app.config import get_settings
from app.database import SessionLocal
from app.dependencies import get_memory_code_store
from app.services.code_store import SqlCodeStore
from app.services.otp import OneTimeCodeService

logger = logging.getLogger(__name__)


def run_code_cleanup_job() -> None:
    """Delete one-time codes that can no longer validate."""
    if get_settings().code_store_backend == "memory":
        removed = OneTimeCodeService(get_memory_code_store()).purge_expired()
    else:
        db: Session = SessionLocal()
        try:
            removed = OneTimeCodeService(SqlCodeStore(db)).purge_expired()
        finally:
            db.close()
    if removed:
        logger.info("Code cleanup: removed %d stale one-time code(s).", removed)
