"""
Persistence of the single in-flight resumable upload session.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from backup.types import DEFAULT_SESSION_MAX_AGE_DAYS, MILLIS_PER_DAY, ResumableSession
from database import DatabaseManager


def now_millis() -> int:
    return int(time.time() * 1000)


class SessionStore:
    """Load, save and clear the one resumable session slot.

    The slot lives in the state database so that an interrupted upload can be
    resumed after the process restarts. There is no locking: only one
    orchestrator may use a store at a time.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        max_age_days: float = DEFAULT_SESSION_MAX_AGE_DAYS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.db_manager = db_manager
        self.max_age_millis = int(max_age_days * MILLIS_PER_DAY)
        self.logger = logger or logging.getLogger("backup_uploader")

    def load(self) -> Optional[ResumableSession]:
        return self.db_manager.load_resume_session()

    def save(self, session: ResumableSession) -> None:
        """Replace the stored session with ``session`` (all fields at once)."""
        self.db_manager.save_resume_session(session)

    def clear(self) -> None:
        self.db_manager.clear_resume_session()

    def is_expired(self, session: ResumableSession, now: Optional[int] = None) -> bool:
        """True when the session is strictly older than the maximum age."""
        current = now_millis() if now is None else now
        return current - session.created_at_millis > self.max_age_millis

    def update_bytes_uploaded(self, bytes_uploaded: int) -> None:
        """Record a new confirmed offset; does nothing when no session is stored."""
        if not self.db_manager.update_resume_bytes_uploaded(bytes_uploaded):
            self.logger.debug("No resume session stored; offset %s not persisted.", bytes_uploaded)
