from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from authstate.api.schemas import (
    Envelope,
    SessionVerdictResponse,
    UserStatusResponse,
    VerifySessionRequest,
    VerifySessionResponse,
)
from authstate.logging import get_correlation_id, get_logger
from authstate.service.errors import AuthenticationError
from authstate.service.runtime import get_runtime
from authstate.storage.models import SessionVerdict

logger = get_logger(__name__)

router = APIRouter(prefix="/v1")


def _ok(data) -> Envelope:
    envelope = Envelope(status="ok", data=data)
    cid = get_correlation_id()
    if cid:
        envelope.request_id = cid
    return envelope


def get_session_token(
    request: Request,
    session_id: Optional[str] = Header(None, convert_underscores=False),
) -> Optional[str]:
    """Session token from the configured cookie, falling back to the header."""
    cookie_name = get_runtime().settings.session_cookie_name
    return request.cookies.get(cookie_name) or session_id


async def require_session(
    session_token: Optional[str] = Depends(get_session_token),
) -> SessionVerdict:
    verdict = await get_runtime().sessions.resolve(session_token)
    if not verdict.valid:
        raise AuthenticationError("invalid session")
    return verdict


@router.get("/session", response_model=Envelope)
async def read_session(session_token: Optional[str] = Depends(get_session_token)):
    verdict = await get_runtime().sessions.resolve(session_token)
    return _ok(SessionVerdictResponse(valid=verdict.valid, user_id=verdict.user_id))


@router.post("/session/verify", response_model=Envelope)
async def verify_session(
    body: VerifySessionRequest,
    session_token: Optional[str] = Depends(get_session_token),
):
    match = await get_runtime().sessions.verify_match(body.user_id, session_token)
    if not match:
        logger.info("session_owner_mismatch", user_id=body.user_id)
    return _ok(VerifySessionResponse(match=match))


@router.get("/users/me/status", response_model=Envelope)
async def read_my_status(verdict: SessionVerdict = Depends(require_session)):
    status = await get_runtime().user_status.get_status(verdict.user_id)
    return _ok(UserStatusResponse(user_id=verdict.user_id, status=status))
