"""Shared FastAPI dependencies."""

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Request

from app.core.exceptions import UnauthorizedError
from app.core.logging import bind_user_id
from app.core.security import load_session_cookie
from app.models.user import User
from app.storage.base import AssetStore, build_asset_store

SESSION_COOKIE_NAME = "imagestudio_session"


async def get_current_user(request: Request) -> User:
    """Dependency: load session from cookie and return User."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    try:
        user = await User.get(PydanticObjectId(user_id))
    except InvalidId:
        raise UnauthorizedError("Invalid session")
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    bind_user_id(str(user.id))
    return user


def get_asset_store(request: Request) -> AssetStore:
    """Dependency: the app-wide asset store, created on first use and closed on shutdown."""
    store = getattr(request.app.state, "asset_store", None)
    if store is None:
        store = build_asset_store()
        request.app.state.asset_store = store
    return store
