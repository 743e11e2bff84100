from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from app.core.config import get_settings
from app.core.security import SESSION_MAX_AGE, create_session_cookie
from app.deps import SESSION_COOKIE_NAME, get_current_user
from app.models.user import User
from app.services import users as user_service

router = APIRouter()


class SignUpRequest(BaseModel):
    email: str
    password: str
    name: str = ""


class SignInRequest(BaseModel):
    email: str
    password: str


def _user_out(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "credits": user.credits,
        "created_at": user.created_at.isoformat(),
    }


def _set_session(response: Response, user: User) -> None:
    payload = user_service.session_payload_for_user(user)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=create_session_cookie(payload),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=get_settings().session_cookie_secure,
        samesite="lax",
        path="/",
    )


@router.post("/sign-up")
async def sign_up(body: SignUpRequest, response: Response):
    """Create an account with email and password; sets the session cookie."""
    user = await user_service.sign_up(body.email, body.password, body.name)
    _set_session(response, user)
    return {"success": True, "user": _user_out(user)}


@router.post("/sign-in")
async def sign_in(body: SignInRequest, response: Response):
    user = await user_service.sign_in(body.email, body.password)
    _set_session(response, user)
    return {"success": True, "user": _user_out(user)}


@router.post("/sign-out")
async def sign_out(response: Response, everywhere: bool = False, user: User = Depends(get_current_user)):
    """Clear the session cookie; with everywhere=true also revoke every other session."""
    if everywhere:
        await user_service.invalidate_sessions(user)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user)):
    """Return current user. Requires session cookie."""
    return {"success": True, "user": _user_out(user)}
