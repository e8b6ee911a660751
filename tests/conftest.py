"""
Shared fixtures: every test runs against its own temporary SQLite database.
"""

import pytest

from src.core import dao
from src.core.db import init_db


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH at a fresh database file for the duration of a test."""
    db_path = tmp_path / "test_foundries.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    init_db()
    yield str(db_path)


@pytest.fixture
def make_foundry():
    """Insert a foundry with sensible defaults; keyword arguments override fields."""
    def _make(slug: str, **fields):
        data = {
            "slug": slug,
            "name": slug.replace("-", " ").title(),
            "url": f"https://{slug}.example",
            "founder": "Unknown",
            "founded": 1990,
            "location_city": "Berlin",
            "location_country": "Germany",
            "notable_typefaces": ["Sans One"],
            "style": ["sans-serif"],
        }
        data.update(fields)
        return dao.insert_foundry(data)
    return _make
