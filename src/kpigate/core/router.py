"""
Request routing and authorization.

Validates the operation, table, identifier and fields of an already
authenticated request against fixed whitelists, then dispatches to the
storage gateway. No caller-supplied table or column name reaches storage
without passing through here.
"""

import datetime as dt
from typing import Any, Dict, FrozenSet, Mapping, Optional

import structlog

from ..models.requests import DataRequest
from ..models.tables import METRIC_TYPES, SEGMENTS, STAGES
from .exceptions import (
    InvalidOperationError,
    InvalidTableError,
    MissingIdentifierError,
    NoValidFieldsError,
    NotFoundError,
    ValidationError,
)
from .kpi import build_kpi_snapshot
from .storage import Ordering, StorageGateway

logger = structlog.get_logger(__name__)

READ_OPERATIONS: FrozenSet[str] = frozenset({"getKPIs", "list", "get"})
WRITE_OPERATIONS: FrozenSet[str] = frozenset({"create", "update", "delete"})
ID_OPERATIONS: FrozenSet[str] = frozenset({"get", "update", "delete"})

ALLOWED_TABLES: FrozenSet[str] = frozenset({
    "cash_position",
    "monthly_burn",
    "customer",
    "employee_count",
    "pipeline_client",
    "quarter_goal",
    "pipeline_note",
})

# Writable columns per table. "id" is accepted on create only.
ALLOWED_FIELDS: Dict[str, FrozenSet[str]] = {
    "cash_position": frozenset({"id", "amount", "date", "notes"}),
    "monthly_burn": frozenset({"id", "amount", "month", "notes"}),
    "customer": frozenset({"id", "name", "is_pilot", "contract_value", "arr", "start_date", "status"}),
    "employee_count": frozenset({"id", "count", "date", "is_full_time"}),
    "pipeline_client": frozenset({
        "id", "name", "segment", "stage", "estimated_contract_size",
        "engagement_start_date", "status", "notes",
    }),
    "quarter_goal": frozenset({
        "id", "name", "target_value", "current_value", "quarter", "year", "metric_type", "order",
    }),
    "pipeline_note": frozenset({"id", "content", "order"}),
}

FIELD_CHOICES: Dict[tuple, tuple] = {
    ("pipeline_client", "segment"): SEGMENTS,
    ("pipeline_client", "stage"): STAGES,
    ("quarter_goal", "metric_type"): METRIC_TYPES,
}

DEFAULT_ORDERING: Dict[str, Ordering] = {
    "cash_position": ("date", True),
    "monthly_burn": ("month", True),
    "employee_count": ("date", True),
    "pipeline_note": ("order", False),
}


def whitelist_fields(table: str, data: Mapping[str, Any], allow_id: bool) -> Dict[str, Any]:
    """Keep only the table's permitted columns; everything else is dropped."""
    permitted = ALLOWED_FIELDS[table]
    kept = {
        key: value
        for key, value in data.items()
        if key in permitted and (allow_id or key != "id")
    }
    dropped = sorted(set(data) - set(kept))
    if dropped:
        logger.debug("Dropped non-whitelisted fields", table=table, fields=dropped)
    return kept


def check_field_values(table: str, values: Mapping[str, Any]) -> None:
    """Enforce enumerated and ranged columns before they reach storage."""
    for column, value in values.items():
        choices = FIELD_CHOICES.get((table, column))
        if choices is not None and value is not None and value not in choices:
            raise ValidationError(
                f"Field '{column}' must be one of: {', '.join(choices)}",
                details={"field": column},
            )

    quarter = values.get("quarter") if table == "quarter_goal" else None
    if quarter is not None and (
        isinstance(quarter, bool) or not isinstance(quarter, int) or not 1 <= quarter <= 4
    ):
        raise ValidationError("Field 'quarter' must be between 1 and 4", details={"field": "quarter"})


class RequestRouter:
    """Authorizes and dispatches read and write requests."""

    def __init__(self, storage: StorageGateway) -> None:
        self.storage = storage

    @staticmethod
    def _check_table(table: Optional[str]) -> str:
        if not isinstance(table, str) or table not in ALLOWED_TABLES:
            raise InvalidTableError(table)
        return table

    @staticmethod
    def _check_id(request: DataRequest) -> str:
        if request.id is None or request.id == "":
            raise MissingIdentifierError(request.operation)
        return str(request.id)

    async def handle_read(self, request: DataRequest, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        if request.operation not in READ_OPERATIONS:
            raise InvalidOperationError(request.operation)

        if request.operation == "getKPIs":
            tables = await self.storage.fetch_kpi_tables()
            return build_kpi_snapshot(tables, now=now).to_response()

        table = self._check_table(request.table)

        if request.operation == "list":
            filters = request.filters or {}
            permitted = ALLOWED_FIELDS[table]
            predicates = {key: value for key, value in filters.items() if key in permitted}
            if len(predicates) != len(filters):
                logger.debug(
                    "Dropped non-whitelisted filters",
                    table=table,
                    fields=sorted(set(filters) - set(predicates)),
                )

            ordering = DEFAULT_ORDERING.get(table)
            if table == "quarter_goal" and "quarter" in predicates and "year" in predicates:
                ordering = ("order", False)

            rows = await self.storage.list_rows(table, predicates, ordering)
            return {"data": rows}

        record_id = self._check_id(request)
        row = await self.storage.get_row(table, record_id)
        if row is None:
            raise NotFoundError(table, record_id)
        return {"data": row}

    async def handle_write(self, request: DataRequest) -> Dict[str, Any]:
        if request.operation not in WRITE_OPERATIONS:
            raise InvalidOperationError(request.operation)

        table = self._check_table(request.table)

        if request.operation == "create":
            values = whitelist_fields(table, request.data or {}, allow_id=True)
            if not values:
                raise NoValidFieldsError(table)
            check_field_values(table, values)
            row = await self.storage.create_row(table, values)
            logger.info("Record created", table=table, id=row.get("id"))
            return {"data": row}

        record_id = self._check_id(request)

        if request.operation == "update":
            values = whitelist_fields(table, request.data or {}, allow_id=False)
            if not values:
                raise NoValidFieldsError(table)
            check_field_values(table, values)
            row = await self.storage.update_row(table, record_id, values)
            if row is None:
                raise NotFoundError(table, record_id)
            logger.info("Record updated", table=table, id=record_id, fields=sorted(values))
            return {"data": row}

        deleted = await self.storage.delete_row(table, record_id)
        logger.info("Record deleted", table=table, id=record_id, rows=deleted)
        return {"success": True}
