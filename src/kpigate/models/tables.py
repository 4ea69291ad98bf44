"""
Table models for the dashboard store.

Seven domain tables plus the credential table. Columns mirror what the
dashboard reads and writes; enumerated columns are constrained here and
checked again by the request router.
"""

import datetime as dt
from typing import Dict, Optional, Type
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base

SEGMENTS = ("smb", "mid_market", "large_cap")
STAGES = ("initial_meeting", "pilot_scoping", "pilot", "contracting")
METRIC_TYPES = ("ARR", "customers", "pipeline_value", "custom")


def _new_id() -> str:
    return str(uuid4())


def _in_list(column: str, values: tuple) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class RecordMixin:
    """Primary key and creation timestamp shared by every table."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class InvestorPassword(RecordMixin, Base):
    """Credential records. Inserted administratively, never by the API."""
    __tablename__ = "investor_password"

    name: Mapped[Optional[str]] = mapped_column(Text)
    is_artemis_management: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(Text)
    # Legacy plaintext, kept only until records are migrated to hashes
    password: Mapped[Optional[str]] = mapped_column(Text)


class CashPosition(RecordMixin, Base):
    __tablename__ = "cash_position"

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class MonthlyBurn(RecordMixin, Base):
    __tablename__ = "monthly_burn"

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    month: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class Customer(RecordMixin, Base):
    __tablename__ = "customer"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_pilot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    contract_value: Mapped[Optional[float]] = mapped_column(Float)
    arr: Mapped[Optional[float]] = mapped_column(Float)
    start_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    status: Mapped[Optional[str]] = mapped_column(Text)


class EmployeeCount(RecordMixin, Base):
    __tablename__ = "employee_count"

    count: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    is_full_time: Mapped[bool] = mapped_column(Boolean, nullable=False)


class PipelineClient(RecordMixin, Base):
    __tablename__ = "pipeline_client"
    __table_args__ = (
        CheckConstraint(_in_list("segment", SEGMENTS), name="ck_pipeline_client_segment"),
        CheckConstraint(_in_list("stage", STAGES), name="ck_pipeline_client_stage"),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    segment: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    stage: Mapped[str] = mapped_column(String(32), nullable=False, default="initial_meeting", index=True)
    estimated_contract_size: Mapped[Optional[float]] = mapped_column(Float)
    engagement_start_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    status: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class QuarterGoal(RecordMixin, Base):
    __tablename__ = "quarter_goal"
    __table_args__ = (
        CheckConstraint("quarter >= 1 AND quarter <= 4", name="ck_quarter_goal_quarter"),
        CheckConstraint(_in_list("metric_type", METRIC_TYPES), name="ck_quarter_goal_metric_type"),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    current_value: Mapped[Optional[float]] = mapped_column(Float)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    metric_type: Mapped[Optional[str]] = mapped_column(String(32))
    order: Mapped[Optional[int]] = mapped_column("order", Integer)


class PipelineNote(RecordMixin, Base):
    __tablename__ = "pipeline_note"

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    order: Mapped[int] = mapped_column("order", Integer, nullable=False, default=0)


DOMAIN_TABLES: Dict[str, Type[Base]] = {
    "cash_position": CashPosition,
    "monthly_burn": MonthlyBurn,
    "customer": Customer,
    "employee_count": EmployeeCount,
    "pipeline_client": PipelineClient,
    "quarter_goal": QuarterGoal,
    "pipeline_note": PipelineNote,
}
