"""
KPI aggregation.

Pure functions over raw table rows. Rows may hold ``date`` objects (from
the store) or ISO strings (from fixtures); ordering of the input is not
trusted.
"""

import datetime as dt
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..models.kpi import CustomerSummary, KPISnapshot, PipelineCell, PipelineClientView
from ..models.tables import SEGMENTS, STAGES
from .storage import KPITables

Row = Mapping[str, Any]

ONE_DAY = dt.timedelta(days=1)


def _as_date(value: Any) -> Optional[dt.date]:
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        try:
            return dt.date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _number(value: Any) -> float:
    """Missing or null numbers count as 0."""
    if value is None or isinstance(value, bool):
        return 0
    return value


def latest_by_date(rows: Iterable[Row], column: str) -> Optional[Row]:
    """Row with the greatest date in ``column``; ties keep the first seen."""
    latest: Optional[Row] = None
    latest_date: Optional[dt.date] = None
    for row in rows:
        row_date = _as_date(row.get(column))
        if row_date is None:
            continue
        if latest_date is None or row_date > latest_date:
            latest, latest_date = row, row_date
    return latest


def days_since(start: Optional[dt.date], now: dt.datetime) -> int:
    """Whole days elapsed from midnight UTC of ``start`` until ``now``."""
    if start is None:
        return 0
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    started = dt.datetime.combine(start, dt.time.min, tzinfo=dt.timezone.utc)
    return math.floor((now - started) / ONE_DAY)


def format_pipeline_client(row: Row, now: dt.datetime) -> PipelineClientView:
    start = _as_date(row.get("engagement_start_date"))
    return PipelineClientView(
        id=row.get("id"),
        name=row.get("name"),
        segment=row.get("segment"),
        stage=row.get("stage") or "initial_meeting",
        estimated_contract_size=_number(row.get("estimated_contract_size")),
        engagement_start_date=start,
        status=row.get("status"),
        notes=row.get("notes"),
        days_since_engagement=days_since(start, now),
    )


def build_pipeline_matrix(clients: List[PipelineClientView]) -> Dict[str, Dict[str, PipelineCell]]:
    """
    Cross-tabulate clients by segment and stage.

    The grid is always the full fixed set of segments and stages. Clients
    whose segment or stage lies outside those sets land in no cell.
    """
    matrix: Dict[str, Dict[str, PipelineCell]] = {
        segment: {stage: PipelineCell() for stage in STAGES} for segment in SEGMENTS
    }
    for client in clients:
        row = matrix.get(client.segment or "")
        if row is None or client.stage not in row:
            continue
        cell = row[client.stage]
        cell.clients.append(client)
        cell.count += 1
        cell.total_value += client.estimated_contract_size
    return matrix


def build_kpi_snapshot(tables: KPITables, now: Optional[dt.datetime] = None) -> KPISnapshot:
    """Compute the dashboard snapshot from raw rows."""
    if now is None:
        now = dt.datetime.now(dt.timezone.utc)

    cash = latest_by_date(tables.cash_positions, "date")
    burn = latest_by_date(tables.monthly_burns, "month")

    customers = tables.customers
    full_time = latest_by_date(
        (r for r in tables.employee_counts if r.get("is_full_time") is True), "date"
    )
    contractors = latest_by_date(
        (r for r in tables.employee_counts if r.get("is_full_time") is False), "date"
    )

    clients = [format_pipeline_client(row, now) for row in tables.pipeline_clients]
    notes = sorted(tables.pipeline_notes, key=lambda n: n.get("order") or 0)

    return KPISnapshot(
        cash_position=_number(cash.get("amount")) if cash else 0,
        cash_position_date=_as_date(cash.get("date")) if cash else None,
        monthly_burn=_number(burn.get("amount")) if burn else 0,
        monthly_burn_month=_as_date(burn.get("month")) if burn else None,
        customer_count=len(customers),
        total_arr=sum(_number(c.get("arr")) for c in customers),
        total_contract_value=sum(_number(c.get("contract_value")) for c in customers),
        full_time_employee_count=_number(full_time.get("count")) if full_time else 0,
        contractor_count=_number(contractors.get("count")) if contractors else 0,
        customers=[
            CustomerSummary(
                id=c.get("id"),
                name=c.get("name"),
                is_pilot=c.get("is_pilot"),
                contract_value=_number(c.get("contract_value")),
                arr=_number(c.get("arr")),
                start_date=_as_date(c.get("start_date")),
                status=c.get("status"),
            )
            for c in customers
        ],
        pipeline_clients=clients,
        pipeline_matrix=build_pipeline_matrix(clients),
        pipeline_notes=[dict(n) for n in notes],
    )
