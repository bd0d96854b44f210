import pytest

from campus_connect.models import render_ddl

TABLES = ["users", "events", "registrations", "merch", "orders", "order_items", "reviews", "favorites"]


def test_mysql_ddl_carries_constraints():
    ddl = render_ddl("mysql")
    for table in TABLES:
        assert f"CREATE TABLE {table}" in ddl
    assert "CONSTRAINT uq_user_event UNIQUE (user_id, event_id)" in ddl
    assert "CONSTRAINT uq_order_merch UNIQUE (order_id, merch_id)" in ddl
    assert "CONSTRAINT uq_fav UNIQUE (user_id, event_id)" in ddl
    assert "CONSTRAINT chk_review_rating CHECK (rating BETWEEN 1 AND 5)" in ddl
    assert "chk_review_target" in ddl
    assert "ON DELETE RESTRICT ON UPDATE CASCADE" in ddl
    assert ddl.count("ON DELETE SET NULL ON UPDATE CASCADE") == 2
    assert ddl.count("ON DELETE CASCADE ON UPDATE CASCADE") == 9
    assert "CREATE INDEX idx_events_starts_at ON events (starts_at)" in ddl
    assert "BIGINT" in ddl


def test_tables_emitted_in_dependency_order():
    ddl = render_ddl("sqlite")
    positions = [ddl.index(f"CREATE TABLE {t} ") for t in TABLES]
    assert positions.index(min(positions)) == 0  # users first
    assert ddl.index("CREATE TABLE orders ") < ddl.index("CREATE TABLE order_items ")
    assert ddl.index("CREATE TABLE merch ") < ddl.index("CREATE TABLE reviews ")


def test_unknown_dialect():
    with pytest.raises(ValueError):
        render_ddl("oracle")
