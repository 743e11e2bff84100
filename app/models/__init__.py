from app.models.user import User
from app.models.project import Project
from app.models.credit_ledger import CreditLedgerEntry
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Project",
    "CreditLedgerEntry",
    "AuditLog",
]
