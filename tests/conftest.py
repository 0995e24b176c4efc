"""
Pytest configuration for the sqldatatable project.
"""

import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine, text

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables from .env file when one exists
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

CUSTOMERS = [
    {"id": 1, "name": "Ada", "city": "London", "notes": "first"},
    {"id": 2, "name": "Grace", "city": "New York", "notes": None},
    {"id": 3, "name": "Linus", "city": "Helsinki", "notes": "kernel"},
    {"id": 4, "name": "Guido", "city": "Amsterdam", "notes": None},
]


@pytest.fixture
def database_url(tmp_path):
    """SQLite database file with a small customers table."""
    url = f"sqlite:///{tmp_path / 'customers.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE customers ("
                "id INTEGER PRIMARY KEY, name TEXT, city TEXT, notes TEXT)"
            )
        )
        conn.execute(
            text(
                "INSERT INTO customers (id, name, city, notes) "
                "VALUES (:id, :name, :city, :notes)"
            ),
            CUSTOMERS,
        )
    engine.dispose()
    return url


@pytest.fixture
def flaky_reader(monkeypatch):
    """
    Replace the executor's row reader with one that fails a set number of times.

    Returns a callable taking the number of failures; the returned state dict
    records how many attempts were made.
    """
    from sqldatatable.database import query_executor

    original = query_executor.read_frame

    def install(failures: int):
        state = {"calls": 0}

        def reader(connection, statement, params):
            state["calls"] += 1
            if state["calls"] <= failures:
                raise RuntimeError(f"transient failure {state['calls']}")
            return original(connection, statement, params)

        monkeypatch.setattr(query_executor, "read_frame", reader)
        return state

    return install
