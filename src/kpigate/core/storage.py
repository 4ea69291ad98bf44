"""
Storage gateway over the dashboard tables.

Receives only table names and column names that the request router has
already whitelisted. Any SQLAlchemy failure is logged here and converted
to ``StorageFailure`` so storage internals never reach the caller.
"""

import datetime as dt
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog
from sqlalchemy import Boolean, Date, Float, Integer, delete, select
from sqlalchemy.exc import SQLAlchemyError

from ..models.tables import DOMAIN_TABLES, InvestorPassword
from .credentials import CredentialRecord
from .database import Database
from .exceptions import StorageFailure, ValidationError
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)

Row = Dict[str, Any]

# Signed 64-bit, the widest integer column any supported backend stores
INT_MIN = -(2 ** 63)
INT_MAX = 2 ** 63 - 1

# The sqlite3 driver raises OverflowError outside the DBAPI hierarchy
STORAGE_ERRORS = (SQLAlchemyError, OverflowError)

# (column, descending)
Ordering = Tuple[str, bool]


@dataclass
class KPITables:
    """Raw rows the KPI aggregator works from."""
    cash_positions: List[Row] = field(default_factory=list)
    monthly_burns: List[Row] = field(default_factory=list)
    customers: List[Row] = field(default_factory=list)
    employee_counts: List[Row] = field(default_factory=list)
    pipeline_clients: List[Row] = field(default_factory=list)
    pipeline_notes: List[Row] = field(default_factory=list)


def _to_row(obj: Any) -> Row:
    return {attr.key: getattr(obj, attr.key) for attr in obj.__mapper__.column_attrs}


def coerce_value(table: str, column: str, value: Any) -> Any:
    """Convert a JSON value to the Python type the column stores."""
    if value is None:
        return None

    model = DOMAIN_TABLES[table]
    column_type = model.__table__.c[column].type

    if isinstance(column_type, Date):
        if isinstance(value, dt.date):
            return value
        if isinstance(value, str):
            try:
                return dt.date.fromisoformat(value[:10])
            except ValueError:
                pass
        raise ValidationError(f"Field '{column}' must be an ISO date", details={"field": column})

    if isinstance(column_type, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"Field '{column}' must be a boolean", details={"field": column})

    if isinstance(column_type, Integer):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError(f"Field '{column}' must be an integer", details={"field": column})
        if not INT_MIN <= value <= INT_MAX:
            raise ValidationError(f"Field '{column}' is out of range", details={"field": column})
        return value

    if isinstance(column_type, Float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                number = float(value)
            except OverflowError:
                raise ValidationError(f"Field '{column}' is out of range", details={"field": column})
            if not math.isfinite(number):
                raise ValidationError(f"Field '{column}' is out of range", details={"field": column})
            return number
        raise ValidationError(f"Field '{column}' must be a number", details={"field": column})

    if not isinstance(value, str):
        raise ValidationError(f"Field '{column}' must be a string", details={"field": column})
    return value


class StorageGateway:
    """CRUD against the relational store."""

    def __init__(self, database: Database, metrics: Optional[MetricsCollector] = None) -> None:
        self.database = database
        self.metrics = metrics

    def _record(self, operation: str, table: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_storage_operation(operation, table, outcome)

    def _failure(self, operation: str, table: str, exc: Exception) -> StorageFailure:
        logger.error(
            "Storage operation failed",
            operation=operation,
            table=table,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        self._record(operation, table, "error")
        return StorageFailure(operation, table)

    def _coerce(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {column: coerce_value(table, column, value) for column, value in values.items()}

    async def fetch_credentials(self) -> List[CredentialRecord]:
        """Load every credential record."""
        table = InvestorPassword.__tablename__
        try:
            async with self.database.session() as session:
                result = await session.execute(select(InvestorPassword))
                users = result.scalars().all()
        except STORAGE_ERRORS as e:
            raise self._failure("fetch_credentials", table, e) from e

        self._record("fetch_credentials", table, "ok")
        return [
            CredentialRecord.from_row(
                id=user.id,
                name=user.name,
                is_management=user.is_artemis_management,
                password_hash=user.password_hash,
                password=user.password,
            )
            for user in users
        ]

    async def list_rows(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        ordering: Optional[Ordering] = None,
    ) -> List[Row]:
        model = DOMAIN_TABLES[table]
        stmt = select(model)
        for column, value in self._coerce(table, filters or {}).items():
            stmt = stmt.where(model.__table__.c[column] == value)
        if ordering is not None:
            column, descending = ordering
            col = model.__table__.c[column]
            stmt = stmt.order_by(col.desc() if descending else col.asc())

        try:
            async with self.database.session() as session:
                result = await session.execute(stmt)
                rows = [_to_row(obj) for obj in result.scalars().all()]
        except STORAGE_ERRORS as e:
            raise self._failure("list", table, e) from e

        self._record("list", table, "ok")
        return rows

    async def get_row(self, table: str, record_id: str) -> Optional[Row]:
        model = DOMAIN_TABLES[table]
        try:
            async with self.database.session() as session:
                obj = await session.get(model, record_id)
                row = _to_row(obj) if obj is not None else None
        except STORAGE_ERRORS as e:
            raise self._failure("get", table, e) from e

        self._record("get", table, "ok" if row is not None else "not_found")
        return row

    async def create_row(self, table: str, values: Mapping[str, Any]) -> Row:
        model = DOMAIN_TABLES[table]
        obj = model(**self._coerce(table, values))
        try:
            async with self.database.session() as session:
                session.add(obj)
                await session.flush()
                await session.refresh(obj)
                row = _to_row(obj)
        except STORAGE_ERRORS as e:
            raise self._failure("create", table, e) from e

        self._record("create", table, "ok")
        return row

    async def update_row(self, table: str, record_id: str, values: Mapping[str, Any]) -> Optional[Row]:
        model = DOMAIN_TABLES[table]
        coerced = self._coerce(table, values)
        try:
            async with self.database.session() as session:
                obj = await session.get(model, record_id)
                if obj is None:
                    row = None
                else:
                    for column, value in coerced.items():
                        setattr(obj, column, value)
                    await session.flush()
                    await session.refresh(obj)
                    row = _to_row(obj)
        except STORAGE_ERRORS as e:
            raise self._failure("update", table, e) from e

        self._record("update", table, "ok" if row is not None else "not_found")
        return row

    async def delete_row(self, table: str, record_id: str) -> int:
        """Delete by id; returns the number of rows removed."""
        model = DOMAIN_TABLES[table]
        try:
            async with self.database.session() as session:
                result = await session.execute(delete(model).where(model.id == record_id))
                deleted = result.rowcount or 0
        except STORAGE_ERRORS as e:
            raise self._failure("delete", table, e) from e

        self._record("delete", table, "ok")
        return deleted

    async def fetch_kpi_tables(self) -> KPITables:
        """Read the tables the KPI snapshot is built from."""
        return KPITables(
            cash_positions=await self.list_rows("cash_position", ordering=("date", True)),
            monthly_burns=await self.list_rows("monthly_burn", ordering=("month", True)),
            customers=await self.list_rows("customer"),
            employee_counts=await self.list_rows("employee_count", ordering=("date", True)),
            pipeline_clients=await self.list_rows("pipeline_client"),
            pipeline_notes=await self.list_rows("pipeline_note", ordering=("order", False)),
        )
