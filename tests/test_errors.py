import pytest
from sqlalchemy.exc import IntegrityError

from campus_connect import errors


def integrity_error(message):
    return IntegrityError("INSERT ...", {}, Exception(message))


@pytest.mark.parametrize(
    "message, kind",
    [
        ("UNIQUE constraint failed: registrations.user_id, registrations.event_id", errors.UNIQUE),
        ("(1062, \"Duplicate entry '2-1' for key 'registrations.uq_user_event'\")", errors.UNIQUE),
        ('duplicate key value violates unique constraint "uq_fav"', errors.UNIQUE),
        ("FOREIGN KEY constraint failed", errors.FOREIGN_KEY),
        ("(1451, 'Cannot delete or update a parent row: a foreign key constraint fails')", errors.FOREIGN_KEY),
        ("CHECK constraint failed: chk_review_rating", errors.CHECK),
        ("(3819, \"Check constraint 'chk_review_target' is violated.\")", errors.CHECK),
        ("NOT NULL constraint failed: users.email", errors.NOT_NULL),
        ("(1048, \"Column 'email' cannot be null\")", errors.NOT_NULL),
        ("something else entirely", errors.UNKNOWN),
    ],
)
def test_classify_across_drivers(message, kind):
    assert errors.classify_integrity_error(integrity_error(message)) == kind


@pytest.mark.parametrize(
    "message, cls",
    [
        ("UNIQUE constraint failed: registrations.user_id, registrations.event_id", errors.AlreadyRegisteredError),
        ("UNIQUE constraint failed: order_items.order_id, order_items.merch_id", errors.DuplicateOrderItemError),
        ("UNIQUE constraint failed: favorites.user_id, favorites.event_id", errors.AlreadyFavoritedError),
        ("UNIQUE constraint failed: users.email", errors.DuplicateEmailError),
        ('duplicate key value violates unique constraint "users_email_key"', errors.DuplicateEmailError),
        ("CHECK constraint failed: chk_review_rating", errors.InvalidRatingError),
        ("CHECK constraint failed: chk_review_target", errors.MissingReviewTargetError),
        ("CHECK constraint failed: chk_merch_price", errors.CheckViolation),
        ("FOREIGN KEY constraint failed", errors.ForeignKeyViolation),
    ],
)
def test_translate_to_domain_error(message, cls):
    err = errors.translate_integrity_error(integrity_error(message))
    assert type(err) is cls
    assert isinstance(err, ValueError)


def test_foreign_key_override():
    err = errors.translate_integrity_error(
        integrity_error("FOREIGN KEY constraint failed"),
        foreign_key=errors.MerchHasOrderHistoryError,
        foreign_key_message="merch 1 has order history",
    )
    assert isinstance(err, errors.MerchHasOrderHistoryError)
    assert err.kind == errors.FOREIGN_KEY
    assert "order history" in str(err)


def test_override_only_applies_to_foreign_keys():
    err = errors.translate_integrity_error(
        integrity_error("UNIQUE constraint failed: users.email"),
        foreign_key=errors.MerchHasOrderHistoryError,
    )
    assert isinstance(err, errors.DuplicateEmailError)
