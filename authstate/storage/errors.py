from __future__ import annotations

from typing import Any, Mapping, Optional


class ConstraintViolation(Exception):
    """A write would break one of the store's keys.

    ``constraint`` mirrors the SQL constraint the durable schema enforces
    (``app_user_pkey``, ``auth_session_pkey``, ``auth_session_user_id_fkey``).
    """

    def __init__(
        self,
        message: str,
        *,
        constraint: str,
        detail: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.constraint = constraint
        self.detail = dict(detail or {})
