"""Shared test fixtures for ShopAssist."""

import os
from collections.abc import Callable, Generator
from datetime import date, datetime
from typing import Any

import pytest
from fakes import FakeTextGenerator, RecordingExecutor

from shopassist.command.classifier import CommandClassifier
from shopassist.core.connection import DatabaseConnection
from shopassist.core.schema import customers, metadata, vehicles, work_order_items, work_orders
from shopassist.gateway.composer import ResponseComposer
from shopassist.gateway.service import CommandGateway
from shopassist.query.executor import QueryExecutor
from shopassist.query.synthesis import QuerySynthesisClient
from shopassist.query.validator import SafetyValidator


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


def _postgresql_connectable(url: str) -> bool:
    """Check if we can connect to PostgreSQL."""
    if not _psycopg_available():
        return False
    conn = DatabaseConnection(url)
    try:
        return conn.test_connection()
    except Exception:
        return False
    finally:
        conn.close()


# Skip marker for tests requiring PostgreSQL
requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install shopassist[postgresql])",
)


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from environment or use default.

    Tests using this fixture should also use @requires_postgresql marker.
    """
    url = os.environ.get("TEST_DATABASE_URL", "postgresql://localhost/shopassist_test")
    if not _psycopg_available():
        pytest.skip("psycopg not installed")
    if not _postgresql_connectable(url):
        pytest.skip(f"Cannot connect to PostgreSQL at {url}")
    return url


CUSTOMERS = [
    {
        "id": 1,
        "customer_name": "Bob Johnson",
        "first_name": "Bob",
        "last_name": "Johnson",
        "phone_primary": "5551234567",
        "email": "bob@example.com",
        "city": "Springfield",
        "is_active": True,
        "created_at": datetime(2024, 1, 5, 9, 30),
    },
    {
        "id": 2,
        "customer_name": "Alice Smith",
        "first_name": "Alice",
        "last_name": "Smith",
        "phone_primary": "5559876543",
        "email": "alice@example.com",
        "city": "Shelbyville",
        "is_active": True,
        "created_at": datetime(2024, 2, 11, 14, 0),
    },
    {
        "id": 3,
        "customer_name": "Bobby Tables",
        "first_name": "Bobby",
        "last_name": "Tables",
        "phone_primary": "5550001111",
        "email": None,
        "city": "Springfield",
        "is_active": False,
        "created_at": datetime(2023, 7, 1, 8, 0),
    },
]

VEHICLES = [
    {
        "id": 1,
        "customer_id": 1,
        "vin": "1HGBH41JXMN109186",
        "year": 2021,
        "make": "Honda",
        "model": "Accord",
        "mileage": 42000,
        "is_active": True,
    },
    {
        "id": 2,
        "customer_id": 2,
        "vin": "2T1BURHE0JC074123",
        "year": 2018,
        "make": "Toyota",
        "model": "Corolla",
        "mileage": 77000,
        "is_active": True,
    },
]

WORK_ORDERS = [
    {
        "id": 19,
        "ro_number": "RO-1019",
        "customer_id": 1,
        "vehicle_id": 1,
        "state": "in_progress",
        "date_opened": date(2024, 3, 1),
        "customer_concern": "Brakes squeal",
        "is_active": True,
    },
    {
        "id": 20,
        "ro_number": "RO-1020",
        "customer_id": 2,
        "vehicle_id": 2,
        "state": "estimate",
        "date_opened": date(2024, 3, 4),
        "customer_concern": "Oil change",
        "is_active": True,
    },
]

WORK_ORDER_ITEMS = [
    {"id": 1, "work_order_id": 19, "item_type": "part", "description": "Brake pads", "quantity": 1},
    {"id": 2, "work_order_id": 19, "item_type": "part", "description": "Rotor", "quantity": 2},
    {"id": 3, "work_order_id": 19, "item_type": "labor", "description": "Brake job", "quantity": 1},
    {"id": 4, "work_order_id": 20, "item_type": "part", "description": "Oil filter", "quantity": 1},
]


def _seed(conn: DatabaseConnection) -> None:
    conn.create_tables(metadata)
    with conn.engine.begin() as db:
        db.execute(customers.insert(), CUSTOMERS)
        db.execute(vehicles.insert(), VEHICLES)
        db.execute(work_orders.insert(), WORK_ORDERS)
        db.execute(work_order_items.insert(), WORK_ORDER_ITEMS)


@pytest.fixture
def connection() -> Generator[DatabaseConnection, None, None]:
    """SQLite in-memory database with the application tables and seed rows."""
    conn = DatabaseConnection("sqlite:///:memory:")
    _seed(conn)
    yield conn
    conn.close()


@pytest.fixture
def pg_connection(postgresql_url: str) -> Generator[DatabaseConnection, None, None]:
    """PostgreSQL database with freshly created and seeded application tables."""
    conn = DatabaseConnection(postgresql_url)
    metadata.drop_all(conn.engine)
    _seed(conn)
    yield conn
    metadata.drop_all(conn.engine)
    conn.close()


@pytest.fixture
def executor(connection: DatabaseConnection) -> QueryExecutor:
    return QueryExecutor(connection, statement_timeout_ms=1000, max_rows=100)


@pytest.fixture
def recording_executor() -> RecordingExecutor:
    return RecordingExecutor(rows=[{"id": 1, "customer_name": "Bob Johnson"}])


@pytest.fixture
def make_gateway() -> Callable[..., CommandGateway]:
    """Factory for gateways around a fake text generator.

    ``generator=None`` leaves the gateway without a synthesizer. Other keyword
    arguments go to :class:`CommandGateway`.
    """

    def factory(
        generator: FakeTextGenerator | None,
        executor: Any,
        **kwargs: Any,
    ) -> CommandGateway:
        kwargs.setdefault("sleep", lambda _: None)
        return CommandGateway(
            classifier=CommandClassifier(),
            synthesizer=QuerySynthesisClient(generator) if generator is not None else None,
            validator=SafetyValidator(),
            executor=executor,
            composer=ResponseComposer(),
            **kwargs,
        )

    return factory
