"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, Generator, List

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, insert
from sqlalchemy.engine import Engine

from src.kpigate.config import (
    CorsSettings,
    DatabaseSettings,
    RateLimitBudget,
    SecuritySettings,
    Settings,
)
from src.kpigate.core.credentials import hash_password
from src.kpigate.core.database import Base, Database
from src.kpigate.core.storage import StorageGateway
from src.kpigate.main import create_app
from src.kpigate.models.tables import DOMAIN_TABLES, InvestorPassword

# Low iteration count keeps PBKDF2 fast in tests
TEST_ITERATIONS = 1000

MANAGEMENT_PASSWORD = "management-password-123"
VIEWER_PASSWORD = "viewer-password-456"
LEGACY_PASSWORD = "legacy-plaintext-789"

ALLOWED_ORIGIN = "https://dashboard.example.com"


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "kpigate-test.db"


@pytest.fixture
def sync_engine(db_path: Path) -> Generator[Engine, None, None]:
    """Synchronous engine on the test database, used for seeding."""
    from src.kpigate.models import tables  # noqa: F401

    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seed_rows(sync_engine: Engine) -> Callable[[str, List[Dict[str, Any]]], None]:
    """Insert raw rows into a domain table."""

    def _seed(table: str, rows: List[Dict[str, Any]]) -> None:
        model = DOMAIN_TABLES[table]
        with sync_engine.begin() as conn:
            conn.execute(insert(model), rows)

    return _seed


@pytest.fixture
def credential_records(sync_engine: Engine) -> List[Dict[str, Any]]:
    """Seed one management, one viewer and one legacy plaintext record."""
    records = [
        {
            "id": "cred-management",
            "name": "Management",
            "is_artemis_management": True,
            "password_hash": hash_password(MANAGEMENT_PASSWORD, iterations=TEST_ITERATIONS),
            "password": None,
        },
        {
            "id": "cred-viewer",
            "name": "Investor",
            "is_artemis_management": False,
            "password_hash": hash_password(VIEWER_PASSWORD, iterations=TEST_ITERATIONS),
            "password": None,
        },
        {
            "id": "cred-legacy",
            "name": "Legacy",
            "is_artemis_management": False,
            "password_hash": None,
            "password": LEGACY_PASSWORD,
        },
    ]
    with sync_engine.begin() as conn:
        conn.execute(insert(InvestorPassword), records)
    return records


@pytest.fixture
def test_settings(db_path: Path) -> Settings:
    """Settings pointing at the temporary database with small budgets."""
    return Settings(
        debug=True,
        log_level="DEBUG",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{db_path}"),
        security=SecuritySettings(
            auth_rate_limit=RateLimitBudget(max_requests=5, window_seconds=300),
            read_rate_limit=RateLimitBudget(max_requests=20, window_seconds=60),
            write_rate_limit=RateLimitBudget(max_requests=10, window_seconds=60),
        ),
        cors=CorsSettings(allowed_origins=[ALLOWED_ORIGIN]),
    )


@pytest.fixture
def test_client(
    test_settings: Settings,
    credential_records: List[Dict[str, Any]],
) -> Generator[TestClient, None, None]:
    """FastAPI test client with test configuration and seeded credentials."""
    app = create_app(test_settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def passwords() -> Dict[str, str]:
    """Plaintext passwords of the seeded credential records."""
    return {
        "management": MANAGEMENT_PASSWORD,
        "viewer": VIEWER_PASSWORD,
        "legacy": LEGACY_PASSWORD,
    }


@pytest.fixture
def management_headers() -> Dict[str, str]:
    return create_auth_headers(MANAGEMENT_PASSWORD)


@pytest.fixture
def viewer_headers() -> Dict[str, str]:
    return create_auth_headers(VIEWER_PASSWORD)


@pytest_asyncio.fixture
async def database(test_settings: Settings, sync_engine: Engine) -> AsyncGenerator[Database, None]:
    """Async database on the same file the sync engine seeded."""
    db = Database(test_settings.database)
    yield db
    await db.close()


@pytest.fixture
def storage(database: Database) -> StorageGateway:
    return StorageGateway(database)


def create_auth_headers(password: str) -> Dict[str, str]:
    """Helper to create credential headers for TestClient."""
    return {"X-Admin-Password": password}
