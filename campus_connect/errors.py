"""Domain errors raised by :mod:`campus_connect.crud`.

Every failure the schema can produce is a constraint violation reported by the
database at write time. ``translate_integrity_error`` turns the driver's
``IntegrityError`` into one of the classes below so callers can react to
"already registered" or "cannot delete item with order history" without
parsing driver messages themselves.

All errors subclass ``ValueError`` so callers that only care about "bad write"
can catch that.
"""
from typing import Optional, Type

from sqlalchemy.exc import IntegrityError

UNIQUE = "unique"
FOREIGN_KEY = "foreign_key"
CHECK = "check"
NOT_NULL = "not_null"
UNKNOWN = "unknown"

# driver message fragments (SQLite, MySQL, PostgreSQL), lowercased
_KIND_MARKERS = (
    (NOT_NULL, ("not null constraint", "not-null constraint", "cannot be null")),
    (FOREIGN_KEY, ("foreign key",)),
    (UNIQUE, ("unique constraint", "duplicate entry", "duplicate key")),
    (CHECK, ("check constraint",)),
)


class CampusConnectError(ValueError):
    pass


class NotFoundError(CampusConnectError):
    pass


class EventFullError(CampusConnectError):
    pass


class OutOfStockError(CampusConnectError):
    def __init__(self, merch_id: int, requested: int):
        super().__init__(f"merch {merch_id}: not enough active stock for {requested}")
        self.merch_id = merch_id
        self.requested = requested


class ConstraintViolation(CampusConnectError):
    kind = UNKNOWN


class UniqueViolation(ConstraintViolation):
    kind = UNIQUE


class ForeignKeyViolation(ConstraintViolation):
    kind = FOREIGN_KEY


class CheckViolation(ConstraintViolation):
    kind = CHECK


class NotNullViolation(ConstraintViolation):
    kind = NOT_NULL


class AlreadyRegisteredError(UniqueViolation):
    pass


class DuplicateEmailError(UniqueViolation):
    pass


class DuplicateOrderItemError(UniqueViolation):
    pass


class AlreadyFavoritedError(UniqueViolation):
    pass


class MerchHasOrderHistoryError(ForeignKeyViolation):
    pass


class InvalidRatingError(CheckViolation):
    pass


class MissingReviewTargetError(CheckViolation):
    pass


_GENERIC = {
    UNIQUE: UniqueViolation,
    FOREIGN_KEY: ForeignKeyViolation,
    CHECK: CheckViolation,
    NOT_NULL: NotNullViolation,
    UNKNOWN: ConstraintViolation,
}

# (kind, fragments naming the constraint or its columns, error class, message)
_SPECIFIC = (
    (UNIQUE, ("uq_user_event", "registrations.user_id"), AlreadyRegisteredError, "already registered for this event"),
    (UNIQUE, ("uq_order_merch", "order_items.order_id"), DuplicateOrderItemError,
     "order already has a line for this merch; change its quantity instead"),
    (UNIQUE, ("uq_fav", "favorites.user_id"), AlreadyFavoritedError, "event already in favorites"),
    (UNIQUE, ("email",), DuplicateEmailError, "email already in use"),
    (CHECK, ("chk_review_rating",), InvalidRatingError, "rating must be between 1 and 5"),
    (CHECK, ("chk_review_target",), MissingReviewTargetError, "review needs an event or a merch target"),
)


def _message(exc: IntegrityError) -> str:
    return str(exc.orig if exc.orig is not None else exc).lower()


def classify_integrity_error(exc: IntegrityError) -> str:
    msg = _message(exc)
    for kind, markers in _KIND_MARKERS:
        if any(m in msg for m in markers):
            return kind
    return UNKNOWN


def translate_integrity_error(
    exc: IntegrityError,
    foreign_key: Optional[Type[ConstraintViolation]] = None,
    foreign_key_message: str = "referenced row does not exist or is still referenced",
) -> ConstraintViolation:
    """Map ``exc`` to the most specific domain error.

    SQLite does not name the foreign key that failed, so the caller passes the
    class to use for a foreign-key failure when it knows what the write meant
    (deleting ordered merch, for example).
    """
    kind = classify_integrity_error(exc)
    msg = _message(exc)
    if kind == FOREIGN_KEY and foreign_key is not None:
        return foreign_key(foreign_key_message)
    for spec_kind, fragments, cls, text in _SPECIFIC:
        if spec_kind == kind and any(f in msg for f in fragments):
            return cls(text)
    if kind == FOREIGN_KEY:
        return ForeignKeyViolation(f"foreign key violation: {foreign_key_message}")
    return _GENERIC[kind](f"integrity error ({kind})")

