"""Sign-up, sign-in, sign-out and session lookup."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from starlette.responses import JSONResponse

from kanbanflow.auth import SignInLocked
from kanbanflow.dashboard.models import SignInBody, SignUpBody
from kanbanflow.dashboard.routers._deps import get_sessions, require_user

logger = logging.getLogger(__name__)

router = APIRouter()

_cookie_secure = False


def set_cookie_policy(secure: bool) -> None:
    """Called by app.py with the configured ``session.secure_cookies``."""
    global _cookie_secure
    _cookie_secure = secure


@router.post("/api/auth/signup", status_code=201)
async def signup(body: SignUpBody):
    sessions = get_sessions()
    try:
        user = await sessions.signup(body.name, body.email, body.password, body.image)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return user


@router.post("/api/auth/signin")
async def signin(body: SignInBody, request: Request):
    sessions = get_sessions()
    client_ip = getattr(request.client, "host", None) or "unknown"
    try:
        result = await sessions.signin(body.email, body.password, client_ip)
    except SignInLocked:
        raise HTTPException(status_code=429, detail="Too many failed attempts. Try again later.")
    if result is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    user, token = result
    response = JSONResponse({"user": user, "token": token})
    response.set_cookie(
        sessions.cookie_name,
        token,
        max_age=int(sessions.ttl.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=_cookie_secure,
    )
    return response


@router.post("/api/auth/signout")
async def signout(request: Request):
    sessions = get_sessions()
    await sessions.revoke(sessions.token_from_request(request))
    response = JSONResponse({"status": "signed_out"})
    response.delete_cookie(sessions.cookie_name)
    return response


@router.get("/api/auth/session")
async def current_session(request: Request):
    user = await require_user(request)
    return {"user": user}
