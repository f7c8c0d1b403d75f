"""Data stores behind the aggregation engine.

Two ports, each with an SQLAlchemy implementation (production) and an
in-memory one (development and tests):
  - SecurityStore: audit/exploit history per bridge (read-only)
  - ApiKeyStore: API-key records (lookup/touch on the hot path, admin CRUD)

SQL failures surface as StorageError; callers decide whether to degrade.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.aggregator.types import AuditEvent, ExploitEvent, SecurityRecord
from app.core.exceptions import StorageError
from app.models.api_key import ApiKey
from app.models.security import AuditReport, ExploitHistory

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security history
# ---------------------------------------------------------------------------


class SecurityStore(Protocol):
    async def fetch(self, bridge: str) -> SecurityRecord | None: ...

    async def list_records(self, bridge: str | None = None) -> list[SecurityRecord]: ...


class SqlSecurityStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def fetch(self, bridge: str) -> SecurityRecord | None:
        records = await self._load(bridge)
        return records[0] if records else None

    async def list_records(self, bridge: str | None = None) -> list[SecurityRecord]:
        return await self._load(bridge)

    async def _load(self, bridge: str | None) -> list[SecurityRecord]:
        audit_q = select(AuditReport).order_by(AuditReport.bridge, AuditReport.audit_date)
        exploit_q = select(ExploitHistory).order_by(ExploitHistory.bridge, ExploitHistory.incident_date)
        if bridge is not None:
            audit_q = audit_q.where(func.lower(AuditReport.bridge) == bridge.lower())
            exploit_q = exploit_q.where(func.lower(ExploitHistory.bridge) == bridge.lower())

        try:
            async with self._session_factory() as session:
                audits = (await session.execute(audit_q)).scalars().all()
                exploits = (await session.execute(exploit_q)).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError("Security history unavailable") from e

        records: dict[str, SecurityRecord] = {}
        for a in audits:
            rec = records.setdefault(a.bridge, SecurityRecord(bridge=a.bridge))
            rec.audits.append(AuditEvent(firm=a.audit_firm, date=a.audit_date, result=a.result))
        for e in exploits:
            rec = records.setdefault(e.bridge, SecurityRecord(bridge=e.bridge))
            rec.exploits.append(
                ExploitEvent(
                    date=e.incident_date,
                    loss_amount=float(e.loss_amount) if e.loss_amount is not None else None,
                    description=e.description,
                )
            )
        return [records[name] for name in sorted(records)]


class MemorySecurityStore:
    def __init__(self, records: list[SecurityRecord] | None = None):
        self._records: dict[str, SecurityRecord] = {}
        for record in records or []:
            self._records[record.bridge.lower()] = record

    def add_audit(self, bridge: str, audit: AuditEvent) -> None:
        self._records.setdefault(bridge.lower(), SecurityRecord(bridge=bridge)).audits.append(audit)

    def add_exploit(self, bridge: str, exploit: ExploitEvent) -> None:
        self._records.setdefault(bridge.lower(), SecurityRecord(bridge=bridge)).exploits.append(exploit)

    async def fetch(self, bridge: str) -> SecurityRecord | None:
        return self._records.get(bridge.lower())

    async def list_records(self, bridge: str | None = None) -> list[SecurityRecord]:
        if bridge is not None:
            record = self._records.get(bridge.lower())
            return [record] if record else []
        return [self._records[k] for k in sorted(self._records)]


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


@dataclass
class ApiKeyRecord:
    id: uuid.UUID
    key_hash: str
    name: str
    description: str | None = None
    permissions: list[str] = field(default_factory=list)
    rate_limit_per_minute: int = 100
    rate_limit_per_hour: int = 1000
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_used_at: datetime | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


class ApiKeyStore(Protocol):
    async def lookup(self, key_hash: str) -> ApiKeyRecord | None: ...

    async def touch(self, key_hash: str) -> None: ...

    async def create(self, record: ApiKeyRecord) -> ApiKeyRecord: ...

    async def list(self) -> list[ApiKeyRecord]: ...

    async def revoke(self, key_id: uuid.UUID) -> bool: ...


def _to_record(row: ApiKey) -> ApiKeyRecord:
    return ApiKeyRecord(
        id=row.id,
        key_hash=row.key_hash,
        name=row.name,
        description=row.description,
        permissions=list(row.permissions or []),
        rate_limit_per_minute=row.rate_limit_per_minute,
        rate_limit_per_hour=row.rate_limit_per_hour,
        is_active=row.is_active,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
        expires_at=row.expires_at,
    )


class SqlApiKeyStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def lookup(self, key_hash: str) -> ApiKeyRecord | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("API key store unavailable") from e
        return _to_record(row) if row else None

    async def touch(self, key_hash: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(ApiKey).where(ApiKey.key_hash == key_hash).values(last_used_at=datetime.now(timezone.utc))
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("API key store unavailable") from e

    async def create(self, record: ApiKeyRecord) -> ApiKeyRecord:
        row = ApiKey(
            id=record.id,
            key_hash=record.key_hash,
            name=record.name,
            description=record.description,
            permissions=list(record.permissions),
            rate_limit_per_minute=record.rate_limit_per_minute,
            rate_limit_per_hour=record.rate_limit_per_hour,
            is_active=record.is_active,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("API key store unavailable") from e
        return record

    async def list(self) -> list[ApiKeyRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(ApiKey).order_by(ApiKey.created_at.desc()))
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise StorageError("API key store unavailable") from e
        return [_to_record(r) for r in rows]

    async def revoke(self, key_id: uuid.UUID) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(ApiKey).where(ApiKey.id == key_id, ApiKey.is_active == True).values(is_active=False)  # noqa: E712
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("API key store unavailable") from e
        return result.rowcount > 0


class MemoryApiKeyStore:
    def __init__(self):
        self._by_hash: dict[str, ApiKeyRecord] = {}

    async def lookup(self, key_hash: str) -> ApiKeyRecord | None:
        record = self._by_hash.get(key_hash)
        return replace(record) if record else None

    async def touch(self, key_hash: str) -> None:
        record = self._by_hash.get(key_hash)
        if record is not None:
            record.last_used_at = datetime.now(timezone.utc)

    async def create(self, record: ApiKeyRecord) -> ApiKeyRecord:
        self._by_hash[record.key_hash] = record
        return record

    async def list(self) -> list[ApiKeyRecord]:
        return sorted(self._by_hash.values(), key=lambda r: r.created_at, reverse=True)

    async def revoke(self, key_id: uuid.UUID) -> bool:
        for record in self._by_hash.values():
            if record.id == key_id and record.is_active:
                record.is_active = False
                return True
        return False
