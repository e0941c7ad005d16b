from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Dict, Optional

from authstate.logging import get_logger
from authstate.storage.errors import ConstraintViolation
from authstate.storage.models import (
    AccountStatus,
    Session,
    SessionRecord,
    User,
    as_utc,
)


class MemoryStore:
    """In-memory durable store for tests and local development.

    Sessions are inserted by whatever issues them; this store only keeps and
    serves them.
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        self.sessions: Dict[str, Session] = {}
        # RLock for all data operations to ensure thread safety
        self._data_lock = threading.RLock()

    def create_user(
        self,
        email: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        status: str = AccountStatus.ACTIVE.value,
    ) -> User:
        with self._data_lock:
            uid = user_id or str(uuid.uuid4())
            if uid in self.users:
                raise ConstraintViolation(
                    "user already exists", constraint="app_user_pkey", detail={"user_id": uid}
                )
            user = User(id=uid, email=email, status=_status_value(status))
            self.users[uid] = user
            return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def set_user_status(self, user_id: str, status: str) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(user_id)
            if not user:
                return None
            user.status = _status_value(status)
            self.logger.info("user_status_updated", user_id=user_id, status=user.status)
            return user

    def add_session(self, token: str, user_id: str, expires_at: datetime) -> Session:
        with self._data_lock:
            if user_id not in self.users:
                raise ConstraintViolation(
                    "user does not exist",
                    constraint="auth_session_user_id_fkey",
                    detail={"user_id": user_id},
                )
            if token in self.sessions:
                raise ConstraintViolation(
                    "session token already exists", constraint="auth_session_pkey"
                )
            sess = Session(token=token, user_id=user_id, expires_at=as_utc(expires_at))
            self.sessions[token] = sess
            return sess

    def remove_session(self, token: str) -> None:
        with self._data_lock:
            self.sessions.pop(token, None)

    def get_session_with_status(self, token: str) -> Optional[SessionRecord]:
        with self._data_lock:
            sess = self.sessions.get(token)
            if not sess:
                return None
            user = self.users.get(sess.user_id)
            if not user:
                return None
            return SessionRecord(
                token=sess.token,
                user_id=sess.user_id,
                expires_at=sess.expires_at,
                status=user.status,
            )

    def get_user_status(self, user_id: str) -> Optional[str]:
        with self._data_lock:
            user = self.users.get(user_id)
            return user.status if user else None

    def close(self) -> None:
        pass


def _status_value(status: str) -> str:
    if isinstance(status, AccountStatus):
        return status.value
    return status
