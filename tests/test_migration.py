import os
import sqlite3
import tempfile

import pytest

from migration.create_schema import create_schema, main

TABLES = ["events", "favorites", "merch", "order_items", "orders", "registrations", "reviews", "users"]


def test_create_schema_and_seed_file_db():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = os.path.join(tmp, "campus.db")
        tables = create_schema(f"sqlite:///{db_path}", seed=True)
        assert tables == TABLES

        conn = sqlite3.connect(db_path)
        try:
            conn.execute("PRAGMA foreign_keys=ON")
            assert conn.execute("SELECT total_cents FROM orders WHERE id = 1").fetchone()[0] == 4898
            assert conn.execute("SELECT count(*) FROM order_items").fetchone()[0] == 2
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("INSERT INTO registrations (user_id, event_id, status) VALUES (2, 1, 'registered')")
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("DELETE FROM merch WHERE id = 1")
        finally:
            conn.close()


def test_create_schema_is_rerunnable_but_refuses_second_seed():
    with tempfile.TemporaryDirectory() as tmp:
        url = f"sqlite:///{os.path.join(tmp, 'campus.db')}"
        create_schema(url, seed=True)
        assert create_schema(url) == TABLES
        with pytest.raises(RuntimeError):
            create_schema(url, seed=True)


def test_in_memory_db_refused():
    with pytest.raises(ValueError):
        create_schema("sqlite://")


def test_cli_prints_ddl(capsys):
    assert main(["--ddl", "postgresql"]) == 0
    out = capsys.readouterr().out
    assert "CREATE TABLE order_items" in out
    assert "ON DELETE RESTRICT" in out


def test_cli_creates_db():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = os.path.join(tmp, "cli.db")
        assert main(["--db", f"sqlite:///{db_path}", "--seed"]) == 0
        conn = sqlite3.connect(db_path)
        try:
            assert conn.execute("SELECT count(*) FROM users").fetchone()[0] == 2
        finally:
            conn.close()
