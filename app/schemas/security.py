"""Security history schemas."""

from datetime import date

from pydantic import BaseModel


class AuditOut(BaseModel):
    bridge: str
    firm: str
    audit_date: date
    result: str
    passed: bool


class ExploitOut(BaseModel):
    bridge: str
    incident_date: date
    loss_amount: float | None
    description: str


class AuditListResponse(BaseModel):
    items: list[AuditOut]
    total: int


class ExploitListResponse(BaseModel):
    items: list[ExploitOut]
    total: int


class SecurityScoreResponse(BaseModel):
    bridge: str
    score: float
    level: str
    has_audit: bool
    has_exploit: bool
