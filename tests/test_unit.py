import pytest

from campus_connect import crud, errors, schemas
from campus_connect.security import verify_password


def make_user(db, email="alice@example.com", role="student"):
    return crud.create_user(
        db,
        schemas.UserCreate(role=role, first_name="Alice", last_name="Smith", email=email, password="s3cret"),
    )


def test_create_user_hashes_password(db_session):
    user = make_user(db_session)
    assert user.id is not None
    assert user.role == "student"
    assert user.password_hash != "s3cret"
    assert verify_password("s3cret", user.password_hash)
    assert user.created_at is not None
    assert user.updated_at is None


def test_create_user_keeps_given_hash(db_session):
    user = crud.create_user(
        db_session,
        schemas.UserCreate(first_name="Imported", last_name="User", email="imp@example.com", password_hash="$2y$12$abc"),
    )
    assert user.password_hash == "$2y$12$abc"


def test_duplicate_email_rejected(db_session):
    make_user(db_session, email="dup@example.com")
    with pytest.raises(errors.DuplicateEmailError):
        make_user(db_session, email="dup@example.com")
    # session is usable after the rollback
    assert len(crud.list_users(db_session)) == 1


def test_update_user_sets_updated_at(db_session):
    user = make_user(db_session)
    updated = crud.update_user(db_session, user.id, schemas.UserUpdate(first_name="Alicia"))
    assert updated.first_name == "Alicia"
    assert updated.last_name == "Smith"
    assert updated.updated_at is not None


def test_update_missing_user_returns_none(db_session):
    assert crud.update_user(db_session, 999, schemas.UserUpdate(first_name="X")) is None
    assert crud.delete_user(db_session, 999) is False


def test_set_user_role(db_session):
    user = make_user(db_session)
    assert crud.set_user_role(db_session, user.id, "admin").role == "admin"
    with pytest.raises(ValueError):
        crud.set_user_role(db_session, user.id, "superuser")


def test_create_event_requires_existing_creator(db_session):
    from datetime import datetime

    with pytest.raises(errors.NotFoundError):
        crud.create_event(
            db_session,
            schemas.EventCreate(title="Ghost", location="Nowhere", starts_at=datetime(2030, 1, 1), created_by=42),
        )


def test_update_user_validates_email(db_session):
    from pydantic import ValidationError

    user = make_user(db_session)
    with pytest.raises(ValidationError):
        schemas.UserUpdate(email="  not-an-email ")
    updated = crud.update_user(db_session, user.id, schemas.UserUpdate(email="  alice@campus.example "))
    assert updated.email == "alice@campus.example"


def test_update_user_skips_explicit_none(db_session):
    user = make_user(db_session)
    updated = crud.update_user(db_session, user.id, schemas.UserUpdate(first_name=None, email=None))
    assert updated.first_name == "Alice"
    assert updated.email == "alice@example.com"
