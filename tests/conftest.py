from typing import Generator

import pytest

from campus_connect.db import init_db, make_engine, make_session_factory
from campus_connect.seed import load_seed


@pytest.fixture(scope="function")
def engine():
    # in-memory SQLite on a single shared connection, foreign keys enforced
    eng = make_engine("sqlite://")
    init_db(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator:
    TestingSessionLocal = make_session_factory(engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def seeded_session(db_session):
    load_seed(db_session)
    return db_session
