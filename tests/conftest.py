"""
Shared fixtures: the shipped permission data and an in-memory SQLite store.
"""

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from fieldservice_authz.permissions import load_config

SCHEMA = [
    """
    CREATE TABLE work_orders (
        id INTEGER PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT DEFAULT 'pending',
        priority TEXT DEFAULT 'normal',
        customer_id INTEGER NOT NULL,
        assigned_technician_id INTEGER,
        scheduled_start TEXT,
        scheduled_end TEXT,
        completed_at TEXT,
        is_active BOOLEAN DEFAULT 1,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE invoices (
        id INTEGER PRIMARY KEY,
        invoice_number TEXT NOT NULL,
        customer_id INTEGER NOT NULL,
        work_order_id INTEGER,
        amount NUMERIC,
        tax NUMERIC,
        total NUMERIC,
        status TEXT DEFAULT 'draft',
        due_date TEXT,
        paid_at TEXT,
        is_active BOOLEAN DEFAULT 1,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE roles (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        priority INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY,
        email TEXT NOT NULL,
        role_id INTEGER NOT NULL REFERENCES roles(id),
        is_active BOOLEAN DEFAULT 1
    )
    """,
]

SEED = [
    "INSERT INTO work_orders (id, title, status, customer_id, assigned_technician_id, is_active) "
    "VALUES (1, 'Fix boiler', 'pending', 99, 7, 1)",
    "INSERT INTO work_orders (id, title, status, customer_id, assigned_technician_id, is_active) "
    "VALUES (2, 'Install sink', 'pending', 42, 7, 1)",
    "INSERT INTO work_orders (id, title, status, customer_id, assigned_technician_id, is_active) "
    "VALUES (3, 'Inspect roof', 'completed', 99, 8, 1)",
    "INSERT INTO work_orders (id, title, status, customer_id, assigned_technician_id, is_active) "
    "VALUES (4, 'Old job', 'pending', 99, NULL, 0)",
    "INSERT INTO invoices (id, invoice_number, customer_id, amount, total) "
    "VALUES (1, 'INV-1', 99, 100, 113)",
    "INSERT INTO invoices (id, invoice_number, customer_id, amount, total) "
    "VALUES (2, 'INV-2', 42, 50, 56.5)",
    "INSERT INTO roles (id, name, priority) VALUES "
    "(1, 'customer', 1), (2, 'technician', 2), (3, 'dispatcher', 3), (4, 'manager', 4), (5, 'admin', 5)",
    "INSERT INTO users (id, email, role_id, is_active) VALUES "
    "(1, 'admin@example.com', 5, 1), (7, 'tech7@example.com', 2, 1), "
    "(99, 'pat@example.com', 1, 1), (5, 'gone@example.com', 1, 0)",
]


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    with engine.begin() as conn:
        for stmt in SCHEMA + SEED:
            conn.execute(text(stmt))
    yield engine
    engine.dispose()
