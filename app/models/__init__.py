from app.models.api_key import ApiKey
from app.models.security import AuditReport, ExploitHistory

__all__ = [
    "ApiKey",
    "AuditReport",
    "ExploitHistory",
]
