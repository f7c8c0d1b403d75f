"""Security history endpoints — audits, exploits, derived scores."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from app.aggregator.access import PERMISSION_SECURITY_READ
from app.aggregator.security_scorer import score_security
from app.aggregator.service import ServiceContainer
from app.core.dependencies import get_container, require_permission
from app.core.exceptions import NotFoundError
from app.schemas.security import (
    AuditListResponse,
    AuditOut,
    ExploitListResponse,
    ExploitOut,
    SecurityScoreResponse,
)

router = APIRouter(
    prefix="/security",
    tags=["security"],
    dependencies=[Depends(require_permission(PERMISSION_SECURITY_READ))],
)


@router.get("/audits", response_model=AuditListResponse)
async def list_audits(
    bridge: str | None = Query(None, max_length=100),
    container: ServiceContainer = Depends(get_container),
):
    records = await container.security_store.list_records(bridge)
    items = [
        AuditOut(bridge=r.bridge, firm=a.firm, audit_date=a.date, result=a.result, passed=a.passed)
        for r in records
        for a in sorted(r.audits, key=lambda a: (a.date, a.firm))
    ]
    return AuditListResponse(items=items, total=len(items))


@router.get("/exploits", response_model=ExploitListResponse)
async def list_exploits(
    bridge: str | None = Query(None, max_length=100),
    container: ServiceContainer = Depends(get_container),
):
    records = await container.security_store.list_records(bridge)
    items = [
        ExploitOut(bridge=r.bridge, incident_date=e.date, loss_amount=e.loss_amount, description=e.description)
        for r in records
        for e in sorted(r.exploits, key=lambda e: e.date)
    ]
    return ExploitListResponse(items=items, total=len(items))


@router.get("/scores/{bridge}", response_model=SecurityScoreResponse)
async def get_security_score(
    bridge: str,
    container: ServiceContainer = Depends(get_container),
):
    """Current score for one bridge. Unlike the quote path, storage failures surface as 503."""
    record = await container.security_store.fetch(bridge)
    if record is None:
        raise NotFoundError(f"No security history for bridge '{bridge}'")
    score = score_security(record, datetime.now(timezone.utc).date())
    return SecurityScoreResponse(
        bridge=record.bridge,
        score=score.score,
        level=score.level.value,
        has_audit=score.has_audit,
        has_exploit=score.has_exploit,
    )
