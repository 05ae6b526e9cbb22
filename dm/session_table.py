from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dm.errors import DialogTimeout
from dm.session import DialogSession
from utils import get_logger


class SessionTable:
    """Open dialog sessions keyed by the correlation id of their invocation message"""

    def __init__(self, idle_timeout: float = 0):
        self.logger = get_logger(__name__)
        self.idle_timeout = idle_timeout
        self._sessions: Dict[Any, DialogSession] = {}
        self._expired_count = 0

    def register(self, origin: Any, session: DialogSession):
        if origin in self._sessions:
            self.logger.warning("session_replaced", origin=origin)
        self._sessions[origin] = session

    def get(self, origin: Any) -> Optional[DialogSession]:
        try:
            return self._sessions.get(origin)
        except TypeError:
            # Unhashable origin straight from client input
            return None

    def remove(self, origin: Any, session: Optional[DialogSession] = None) -> Optional[DialogSession]:
        """Drop the entry for origin; when session is given, only if it is still the registered one"""
        current = self.get(origin)
        if current is None or (session is not None and current is not session):
            return None
        return self._sessions.pop(origin)

    def expire_idle(self, now: Optional[datetime] = None) -> List[Any]:
        """Abort and remove sessions that have waited longer than idle_timeout for a reply

        Sessions whose handler is busy between dialogs are left alone; only an
        unanswered dialog counts as idle.
        """
        if self.idle_timeout <= 0:
            return []

        now = now or datetime.now(timezone.utc)
        expired = [
            origin for origin, session in self._sessions.items()
            if session.awaiting_reply and session.idle_seconds(now) >= self.idle_timeout
        ]

        for origin in expired:
            session = self._sessions.pop(origin)
            idle_seconds = session.idle_seconds(now)
            session.abort(DialogTimeout(origin, idle_seconds))
            self._expired_count += 1
            self.logger.warning("session_expired", origin=origin, idle_seconds=round(idle_seconds, 1))

        return expired

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, origin: Any) -> bool:
        return self.get(origin) is not None

    def get_stats(self) -> dict:
        return {
            "active_sessions": len(self._sessions),
            "expired_sessions": self._expired_count,
            "idle_timeout_seconds": self.idle_timeout,
        }
