"""
Tests for the storage gateway against a temporary SQLite database.
"""

import datetime as dt
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List

import pytest

from src.kpigate.config import DatabaseSettings
from src.kpigate.core.database import Database
from src.kpigate.core.exceptions import StorageFailure, ValidationError
from src.kpigate.core.metrics import MetricsCollector
from src.kpigate.core.storage import StorageGateway, coerce_value

Seeder = Callable[[str, List[Dict[str, Any]]], None]


class TestCoerceValue:
    """Test JSON to column type conversion."""

    def test_date_from_iso_string(self) -> None:
        assert coerce_value("cash_position", "date", "2024-01-31") == dt.date(2024, 1, 31)
        assert coerce_value("cash_position", "date", "2024-01-31T10:00:00Z") == dt.date(2024, 1, 31)

    def test_bad_date(self) -> None:
        with pytest.raises(ValidationError):
            coerce_value("cash_position", "date", "31/01/2024")

    def test_numbers(self) -> None:
        assert coerce_value("cash_position", "amount", 5) == 5.0
        assert coerce_value("employee_count", "count", 3.0) == 3

    @pytest.mark.parametrize(
        "table,column,value",
        [
            ("cash_position", "amount", "100"),
            ("cash_position", "amount", True),
            ("employee_count", "count", 2.5),
            ("employee_count", "is_full_time", "yes"),
            ("customer", "name", 12),
        ],
    )
    def test_wrong_types_rejected(self, table: str, column: str, value: Any) -> None:
        with pytest.raises(ValidationError):
            coerce_value(table, column, value)

    def test_none_passes_through(self) -> None:
        assert coerce_value("customer", "arr", None) is None


class TestStorageGateway:
    """Test CRUD through the gateway."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, storage: StorageGateway) -> None:
        row = await storage.create_row("cash_position", {"amount": 1000, "date": "2024-01-01", "notes": "q1"})

        assert row["id"]
        assert row["amount"] == 1000.0
        assert row["date"] == dt.date(2024, 1, 1)

        fetched = await storage.get_row("cash_position", row["id"])
        assert fetched is not None
        assert fetched["notes"] == "q1"

    @pytest.mark.asyncio
    async def test_create_with_client_id(self, storage: StorageGateway) -> None:
        row = await storage.create_row("pipeline_note", {"id": "note-1", "content": "hello", "order": 0})
        assert row["id"] == "note-1"

    @pytest.mark.asyncio
    async def test_list_with_filters_and_ordering(self, storage: StorageGateway, seed_rows: Seeder) -> None:
        seed_rows("cash_position", [
            {"id": "a", "amount": 1.0, "date": dt.date(2024, 1, 1), "notes": "x"},
            {"id": "c", "amount": 3.0, "date": dt.date(2024, 3, 1), "notes": "x"},
            {"id": "b", "amount": 2.0, "date": dt.date(2024, 2, 1), "notes": "y"},
        ])

        rows = await storage.list_rows("cash_position", ordering=("date", True))
        assert [r["id"] for r in rows] == ["c", "b", "a"]

        rows = await storage.list_rows("cash_position", {"notes": "x"}, ("date", False))
        assert [r["id"] for r in rows] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_update(self, storage: StorageGateway, seed_rows: Seeder) -> None:
        seed_rows("customer", [{"id": "u1", "name": "Acme", "is_pilot": True}])

        row = await storage.update_row("customer", "u1", {"is_pilot": False, "arr": 12000})
        assert row is not None
        assert row["is_pilot"] is False
        assert row["arr"] == 12000.0
        assert row["name"] == "Acme"

    @pytest.mark.asyncio
    async def test_update_missing(self, storage: StorageGateway) -> None:
        assert await storage.update_row("customer", "nope", {"name": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete(self, storage: StorageGateway, seed_rows: Seeder) -> None:
        seed_rows("pipeline_note", [{"id": "n1", "content": "a", "order": 0}])

        assert await storage.delete_row("pipeline_note", "n1") == 1
        assert await storage.delete_row("pipeline_note", "n1") == 0
        assert await storage.get_row("pipeline_note", "n1") is None

    @pytest.mark.asyncio
    async def test_fetch_credentials(self, storage: StorageGateway, credential_records: List[Dict[str, Any]]) -> None:
        records = await storage.fetch_credentials()

        by_id = {r.id: r for r in records}
        assert set(by_id) == {"cred-management", "cred-viewer", "cred-legacy"}
        assert by_id["cred-management"].is_management is True
        assert by_id["cred-legacy"].secret is not None

    @pytest.mark.asyncio
    async def test_fetch_kpi_tables(self, storage: StorageGateway, seed_rows: Seeder) -> None:
        seed_rows("monthly_burn", [
            {"id": "b1", "amount": 10.0, "month": dt.date(2024, 1, 1)},
            {"id": "b2", "amount": 20.0, "month": dt.date(2024, 2, 1)},
        ])

        tables = await storage.fetch_kpi_tables()
        assert [r["id"] for r in tables.monthly_burns] == ["b2", "b1"]
        assert tables.customers == []

    @pytest.mark.asyncio
    async def test_check_constraint_becomes_storage_failure(self, storage: StorageGateway) -> None:
        """Test a database-level rejection surfaces as StorageFailure."""

        with pytest.raises(StorageFailure) as exc_info:
            await storage.create_row(
                "pipeline_client", {"name": "Acme", "segment": "enterprise", "stage": "pilot"}
            )
        assert exc_info.value.status_code == 500
        assert exc_info.value.details == {"operation": "create", "table": "pipeline_client"}

    @pytest.mark.asyncio
    async def test_missing_tables_become_storage_failure(self, tmp_path: Path) -> None:
        """Test driver errors are wrapped and counted."""

        database = Database(DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"))
        metrics = MetricsCollector()
        gateway = StorageGateway(database, metrics=metrics)
        try:
            with pytest.raises(StorageFailure):
                await gateway.list_rows("customer")
        finally:
            await database.close()

        assert metrics.registry.get_sample_value(
            "storage_operations_total",
            {"operation": "list", "table": "customer", "outcome": "error"},
        ) == 1.0


class TestOutOfRangeValues:
    """Test numbers the store cannot hold are rejected or wrapped."""

    @pytest.mark.parametrize("value", [2 ** 63, -(2 ** 63) - 1, 10 ** 20, 1e20])
    def test_integer_outside_64_bits_rejected(self, value: Any) -> None:
        with pytest.raises(ValidationError) as exc_info:
            coerce_value("employee_count", "count", value)
        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"field": "count"}

    def test_integer_at_64_bit_bounds_accepted(self) -> None:
        assert coerce_value("employee_count", "count", 2 ** 63 - 1) == 2 ** 63 - 1
        assert coerce_value("employee_count", "count", -(2 ** 63)) == -(2 ** 63)

    @pytest.mark.parametrize("value", [10 ** 400, float("inf"), float("nan")])
    def test_number_that_does_not_fit_a_float_rejected(self, value: Any) -> None:
        with pytest.raises(ValidationError):
            coerce_value("cash_position", "amount", value)

    @pytest.mark.asyncio
    async def test_create_with_huge_integer_never_reaches_driver(self, storage: StorageGateway) -> None:
        with pytest.raises(ValidationError):
            await storage.create_row("employee_count", {"count": 10 ** 20, "date": "2024-01-01"})

        assert await storage.list_rows("employee_count") == []

    @pytest.mark.asyncio
    async def test_driver_overflow_becomes_storage_failure(self) -> None:
        """Test an OverflowError raised by the driver is wrapped and counted."""

        class OverflowingDatabase:
            @asynccontextmanager
            async def session(self) -> AsyncIterator[None]:
                raise OverflowError("Python int too large to convert to SQLite INTEGER")
                yield

        metrics = MetricsCollector()
        gateway = StorageGateway(OverflowingDatabase(), metrics=metrics)  # type: ignore[arg-type]

        with pytest.raises(StorageFailure) as exc_info:
            await gateway.get_row("employee_count", "e1")

        assert "too large" not in str(exc_info.value)
        assert metrics.registry.get_sample_value(
            "storage_operations_total",
            {"operation": "get", "table": "employee_count", "outcome": "error"},
        ) == 1.0
