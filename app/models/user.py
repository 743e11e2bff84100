from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    email: Indexed(str, unique=True)
    name: str = ""
    password_hash: str = ""
    credits: int = 0  # mutated only through app.services.credits; never negative
    session_version: int = 0
    applied_credit_keys: list[str] = Field(default_factory=list)  # recent idempotency keys already in credits
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
