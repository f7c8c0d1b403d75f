"""Bridge security history. Populated by the ingestion pipeline; read-only here."""

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class AuditReport(Base):
    __tablename__ = "audit_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bridge: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    audit_firm: Mapped[str] = mapped_column(String(200), nullable=False)
    audit_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    result: Mapped[str] = mapped_column(String(100), nullable=False)  # e.g. "passed", "issues found"
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class ExploitHistory(Base):
    __tablename__ = "exploit_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bridge: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    incident_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    loss_amount: Mapped[Decimal | None] = mapped_column(Numeric(20, 2), nullable=True)  # USD
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
