import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.audit_log import AuditLog
from app.models.credit_ledger import CreditLedgerEntry
from app.models.project import Project
from app.models.user import User

DOCUMENT_MODELS = [
    User,
    Project,
    CreditLedgerEntry,
    AuditLog,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def create_client(uri: str) -> AsyncIOMotorClient:
    kwargs = {}
    if _use_tls(uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    return AsyncIOMotorClient(uri, **kwargs)


async def init_db(client=None) -> None:
    """Register document models; pass a client to reuse an existing (or in-memory) connection."""
    settings = get_settings()
    if client is None:
        client = create_client(settings.mongodb_uri)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
