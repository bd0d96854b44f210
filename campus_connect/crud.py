import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import errors, models, schemas
from .security import hash_password
from .utils import clean_text

logger = logging.getLogger(__name__)

# registrations that hold a seat
_SEAT_STATUSES = ("registered", "attended")


def _commit(db: Session, **translate_kwargs):
    """Commit the current unit of work; on a constraint violation roll back and raise a domain error."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        err = errors.translate_integrity_error(e, **translate_kwargs)
        logger.warning("write rejected (%s): %s", err.kind, err)
        raise err from e


def _require(db: Session, model, pk: int, label: str):
    obj = db.get(model, pk)
    if obj is None:
        raise errors.NotFoundError(f"{label} {pk} does not exist")
    return obj


def _changes(changes, nullable=()) -> dict:
    """Fields the caller set. An explicit None only counts for nullable columns."""
    return {
        field: value
        for field, value in changes.model_dump(exclude_unset=True).items()
        if value is not None or field in nullable
    }


# -------------------- Users --------------------

def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    password_hash = user.password_hash if user.password is None else hash_password(user.password)
    db_user = models.User(
        role=user.role,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        password_hash=password_hash,
    )
    db.add(db_user)
    _commit(db)
    db.refresh(db_user)
    logger.info("user %s created (%s)", db_user.id, db_user.role)
    return db_user


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.scalars(select(models.User).where(models.User.email == email)).first()


def list_users(db: Session) -> List[models.User]:
    return list(db.scalars(select(models.User).order_by(models.User.id)))


def update_user(db: Session, user_id: int, changes: schemas.UserUpdate) -> Optional[models.User]:
    user = db.get(models.User, user_id)
    if not user:
        return None
    for field, value in _changes(changes).items():
        setattr(user, field, value)
    _commit(db)
    db.refresh(user)
    return user


def set_user_role(db: Session, user_id: int, role: str) -> Optional[models.User]:
    if role not in models.USER_ROLES:
        raise ValueError(f"invalid role: {role}")
    user = db.get(models.User, user_id)
    if not user:
        return None
    user.role = role
    _commit(db)
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> bool:
    """Delete a user. Their registrations, orders, reviews and favorites go with them;
    events they created stay, with ``created_by`` cleared."""
    user = db.get(models.User, user_id)
    if not user:
        return False
    db.delete(user)
    _commit(db)
    logger.info("user %s deleted", user_id)
    return True


# -------------------- Events --------------------

def create_event(db: Session, event: schemas.EventCreate) -> models.Event:
    if event.created_by is not None:
        _require(db, models.User, event.created_by, "user")
    db_event = models.Event(
        title=event.title,
        description=clean_text(event.description),
        location=event.location,
        starts_at=event.starts_at,
        ends_at=event.ends_at,
        capacity=event.capacity,
        created_by=event.created_by,
    )
    db.add(db_event)
    _commit(db)
    db.refresh(db_event)
    logger.info("event %s created: %s", db_event.id, db_event.title)
    return db_event


def get_event(db: Session, event_id: int) -> Optional[models.Event]:
    return db.get(models.Event, event_id)


def list_events(db: Session, starting_after: Optional[datetime] = None) -> List[models.Event]:
    stmt = select(models.Event).order_by(models.Event.starts_at, models.Event.id)
    if starting_after is not None:
        stmt = stmt.where(models.Event.starts_at >= starting_after)
    return list(db.scalars(stmt))


def update_event(db: Session, event_id: int, changes: schemas.EventUpdate) -> Optional[models.Event]:
    db_event = db.get(models.Event, event_id)
    if not db_event:
        return None
    data = _changes(changes, nullable=("description", "ends_at", "capacity"))
    if "description" in data:
        data["description"] = clean_text(data["description"])
    # check the resulting window before the row is touched
    starts_at = data.get("starts_at", db_event.starts_at)
    ends_at = data.get("ends_at", db_event.ends_at)
    try:
        out_of_order = ends_at is not None and ends_at < starts_at
    except TypeError:
        raise ValueError("starts_at and ends_at must both be naive or both timezone-aware") from None
    if out_of_order:
        raise ValueError("ends_at must not be before starts_at")
    for field, value in data.items():
        setattr(db_event, field, value)
    _commit(db)
    db.refresh(db_event)
    return db_event


def delete_event(db: Session, event_id: int) -> bool:
    """Delete an event. Registrations, reviews and favorites go with it; linked merch stays unlinked."""
    db_event = db.get(models.Event, event_id)
    if not db_event:
        return False
    db.delete(db_event)
    _commit(db)
    logger.info("event %s deleted", event_id)
    return True


# -------------------- Registrations --------------------

def event_lock_stmt(event_id: int):
    """Row lock on the event; registrations for one event queue behind it while seats are counted."""
    return (
        select(models.Event)
        .where(models.Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _seats_taken(db: Session, event_id: int) -> int:
    return db.scalar(
        select(func.count(models.Registration.id)).where(
            models.Registration.event_id == event_id,
            models.Registration.status.in_(_SEAT_STATUSES),
        )
    )


def register_for_event(db: Session, user_id: int, event_id: int) -> models.Registration:
    """Register a user for an event.

    A cancelled registration is reopened in place, there is only ever one row
    per (user, event). Events with a capacity refuse registrations once full;
    the event row stays locked from the seat count to the commit, so concurrent
    registrations cannot overfill it. SQLite has no row locks but serializes
    writers.
    """
    _require(db, models.User, user_id, "user")
    db_event = db.scalars(event_lock_stmt(event_id)).first()
    if db_event is None:
        db.rollback()
        raise errors.NotFoundError(f"event {event_id} does not exist")

    existing = db.scalars(
        select(models.Registration).where(
            models.Registration.user_id == user_id,
            models.Registration.event_id == event_id,
        )
    ).first()
    if existing is not None and existing.status != "cancelled":
        db.rollback()
        raise errors.AlreadyRegisteredError("already registered for this event")

    if db_event.capacity is not None and _seats_taken(db, event_id) >= db_event.capacity:
        db.rollback()
        raise errors.EventFullError(f"event {event_id} is full")

    if existing is not None:
        existing.status = "registered"
        registration = existing
    else:
        registration = models.Registration(user_id=user_id, event_id=event_id, status="registered")
        db.add(registration)
    _commit(db)
    db.refresh(registration)
    logger.info("user %s registered for event %s", user_id, event_id)
    return registration


def get_registration(db: Session, user_id: int, event_id: int) -> Optional[models.Registration]:
    return db.scalars(
        select(models.Registration).where(
            models.Registration.user_id == user_id,
            models.Registration.event_id == event_id,
        )
    ).first()


def set_registration_status(db: Session, user_id: int, event_id: int, status: str) -> Optional[models.Registration]:
    if status not in models.REGISTRATION_STATUSES:
        raise ValueError(f"invalid registration status: {status}")
    registration = get_registration(db, user_id, event_id)
    if registration is None:
        return None
    registration.status = status
    _commit(db)
    db.refresh(registration)
    return registration


def cancel_registration(db: Session, user_id: int, event_id: int) -> Optional[models.Registration]:
    return set_registration_status(db, user_id, event_id, "cancelled")


def list_registrations(db: Session, event_id: Optional[int] = None, user_id: Optional[int] = None) -> List[models.Registration]:
    stmt = select(models.Registration).order_by(models.Registration.id)
    if event_id is not None:
        stmt = stmt.where(models.Registration.event_id == event_id)
    if user_id is not None:
        stmt = stmt.where(models.Registration.user_id == user_id)
    return list(db.scalars(stmt))


# -------------------- Merch --------------------

def create_merch(db: Session, merch: schemas.MerchCreate) -> models.Merch:
    if merch.event_id is not None:
        _require(db, models.Event, merch.event_id, "event")
    db_merch = models.Merch(
        event_id=merch.event_id,
        name=merch.name,
        description=clean_text(merch.description),
        image_url=merch.image_url,
        price_cents=merch.price_cents,
        stock_qty=merch.stock_qty,
        is_active=merch.is_active,
    )
    db.add(db_merch)
    _commit(db)
    db.refresh(db_merch)
    logger.info("merch %s created: %s", db_merch.id, db_merch.name)
    return db_merch


def get_merch(db: Session, merch_id: int) -> Optional[models.Merch]:
    return db.get(models.Merch, merch_id)


def list_merch(db: Session, active_only: bool = False, event_id: Optional[int] = None) -> List[models.Merch]:
    stmt = select(models.Merch).order_by(models.Merch.id)
    if active_only:
        stmt = stmt.where(models.Merch.is_active.is_(True))
    if event_id is not None:
        stmt = stmt.where(models.Merch.event_id == event_id)
    return list(db.scalars(stmt))


def update_merch(db: Session, merch_id: int, changes: schemas.MerchUpdate) -> Optional[models.Merch]:
    """Edit merch details. Existing order lines keep the price they were sold at."""
    db_merch = db.get(models.Merch, merch_id)
    if not db_merch:
        return None
    data = _changes(changes, nullable=("description", "image_url"))
    if "description" in data:
        data["description"] = clean_text(data["description"])
    for field, value in data.items():
        setattr(db_merch, field, value)
    _commit(db)
    db.refresh(db_merch)
    return db_merch


def _adjust_stock(db: Session, merch_id: int, delta: int):
    """Move stock by ``delta``. Taking stock is a conditional update that only
    matches active merch with enough on hand, so concurrent buyers cannot oversell."""
    stmt = update(models.Merch).where(models.Merch.id == merch_id)
    if delta < 0:
        stmt = stmt.where(
            models.Merch.is_active.is_(True),
            models.Merch.stock_qty >= -delta,
        )
    result = db.execute(
        stmt.values(stock_qty=models.Merch.stock_qty + delta).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise errors.OutOfStockError(merch_id, -delta)


def restock_merch(db: Session, merch_id: int, quantity: int) -> models.Merch:
    if quantity <= 0:
        raise ValueError("restock quantity must be positive")
    db_merch = _require(db, models.Merch, merch_id, "merch")
    _adjust_stock(db, merch_id, quantity)
    _commit(db)
    db.refresh(db_merch)
    return db_merch


def deactivate_merch(db: Session, merch_id: int) -> Optional[models.Merch]:
    """Soft-disable merch; the way to retire an item that has order history."""
    db_merch = db.get(models.Merch, merch_id)
    if not db_merch:
        return None
    db_merch.is_active = False
    _commit(db)
    db.refresh(db_merch)
    logger.info("merch %s deactivated", merch_id)
    return db_merch


def delete_merch(db: Session, merch_id: int) -> bool:
    """Delete merch that was never ordered. Ordered merch raises
    :class:`~campus_connect.errors.MerchHasOrderHistoryError`; deactivate it instead."""
    db_merch = db.get(models.Merch, merch_id)
    if not db_merch:
        return False
    db.delete(db_merch)
    _commit(
        db,
        foreign_key=errors.MerchHasOrderHistoryError,
        foreign_key_message=f"merch {merch_id} has order history; deactivate it instead",
    )
    logger.info("merch %s deleted", merch_id)
    return True


# -------------------- Orders --------------------

def place_order(db: Session, order: schemas.OrderCreate) -> models.Order:
    """Create an order with its lines in one transaction.

    Each line snapshots the current merch price and takes stock; if any line
    cannot be filled nothing is written. ``total_cents`` is the sum of the lines.
    """
    _require(db, models.User, order.user_id, "user")

    db_order = models.Order(user_id=order.user_id, status=order.status)
    for line in order.items:
        merch = _require(db, models.Merch, line.merch_id, "merch")
        price = merch.price_cents
        _adjust_stock(db, line.merch_id, -line.quantity)
        db_order.items.append(
            models.OrderItem(merch_id=line.merch_id, quantity=line.quantity, unit_price_cents=price)
        )
    db_order.total_cents = db_order.items_total()
    db.add(db_order)
    _commit(db)
    db.refresh(db_order)
    logger.info("order %s placed by user %s: %s cents", db_order.id, db_order.user_id, db_order.total_cents)
    return db_order


def get_order(db: Session, order_id: int) -> Optional[models.Order]:
    return db.get(models.Order, order_id)


def list_orders(db: Session, user_id: Optional[int] = None) -> List[models.Order]:
    stmt = select(models.Order).order_by(models.Order.id)
    if user_id is not None:
        stmt = stmt.where(models.Order.user_id == user_id)
    return list(db.scalars(stmt))


def _find_item(db_order: models.Order, merch_id: int) -> Optional[models.OrderItem]:
    for item in db_order.items:
        if item.merch_id == merch_id:
            return item
    return None


def add_order_item(db: Session, order_id: int, merch_id: int, quantity: int = 1) -> models.Order:
    """Add a new line to an order. A second line for the same merch is refused
    by the (order, merch) unique key; use :func:`set_order_item_quantity`."""
    if quantity <= 0:
        raise ValueError("quantity must be positive")
    db_order = _require(db, models.Order, order_id, "order")
    merch = _require(db, models.Merch, merch_id, "merch")
    price = merch.price_cents
    _adjust_stock(db, merch_id, -quantity)
    db_order.items.append(models.OrderItem(merch_id=merch_id, quantity=quantity, unit_price_cents=price))
    db_order.total_cents = db_order.items_total()
    _commit(db)
    db.refresh(db_order)
    return db_order


def set_order_item_quantity(db: Session, order_id: int, merch_id: int, quantity: int) -> models.Order:
    """Change the quantity on an existing line, moving stock by the difference."""
    if quantity <= 0:
        raise ValueError("quantity must be positive; use remove_order_item to drop a line")
    db_order = _require(db, models.Order, order_id, "order")
    item = _find_item(db_order, merch_id)
    if item is None:
        raise errors.NotFoundError(f"order {order_id} has no line for merch {merch_id}")
    delta = quantity - item.quantity
    if delta:
        _adjust_stock(db, merch_id, -delta)
        item.quantity = quantity
        db_order.total_cents = db_order.items_total()
        _commit(db)
    db.refresh(db_order)
    return db_order


def remove_order_item(db: Session, order_id: int, merch_id: int) -> models.Order:
    """Drop a line from an order and return its quantity to stock."""
    db_order = _require(db, models.Order, order_id, "order")
    item = _find_item(db_order, merch_id)
    if item is None:
        raise errors.NotFoundError(f"order {order_id} has no line for merch {merch_id}")
    _adjust_stock(db, merch_id, item.quantity)
    db_order.items.remove(item)
    db_order.total_cents = db_order.items_total()
    _commit(db)
    db.refresh(db_order)
    return db_order


def update_order_status(db: Session, order_id: int, status: str) -> Optional[models.Order]:
    if status not in models.ORDER_STATUSES:
        raise ValueError(f"invalid order status: {status}")
    db_order = db.get(models.Order, order_id)
    if not db_order:
        return None
    db_order.status = status
    _commit(db)
    db.refresh(db_order)
    return db_order


def stored_items_total(db: Session, order_id: int) -> int:
    return db.scalar(
        select(
            func.coalesce(func.sum(models.OrderItem.quantity * models.OrderItem.unit_price_cents), 0)
        ).where(models.OrderItem.order_id == order_id)
    )


def order_total_is_consistent(db: Session, order_id: int) -> bool:
    """True when the cached ``orders.total_cents`` equals the sum of the stored lines."""
    db_order = _require(db, models.Order, order_id, "order")
    return db_order.total_cents == stored_items_total(db, order_id)


def delete_order(db: Session, order_id: int) -> bool:
    db_order = db.get(models.Order, order_id)
    if not db_order:
        return False
    db.delete(db_order)
    _commit(db)
    logger.info("order %s deleted", order_id)
    return True


# -------------------- Reviews --------------------

def create_review(db: Session, review: schemas.ReviewCreate) -> models.Review:
    event_id, merch_id = review.target.ids()
    db_review = models.Review(
        user_id=review.user_id,
        event_id=event_id,
        merch_id=merch_id,
        rating=review.rating,
        comment=clean_text(review.comment),
    )
    db.add(db_review)
    _commit(db)
    db.refresh(db_review)
    logger.info("review %s by user %s on %s", db_review.id, db_review.user_id, review.target.kind)
    return db_review


def list_reviews(db: Session, event_id: Optional[int] = None, merch_id: Optional[int] = None) -> List[models.Review]:
    stmt = select(models.Review).order_by(models.Review.id)
    if event_id is not None:
        stmt = stmt.where(models.Review.event_id == event_id)
    if merch_id is not None:
        stmt = stmt.where(models.Review.merch_id == merch_id)
    return list(db.scalars(stmt))


def average_rating(db: Session, event_id: Optional[int] = None, merch_id: Optional[int] = None) -> Optional[float]:
    stmt = select(func.avg(models.Review.rating))
    if event_id is not None:
        stmt = stmt.where(models.Review.event_id == event_id)
    if merch_id is not None:
        stmt = stmt.where(models.Review.merch_id == merch_id)
    value = db.scalar(stmt)
    return float(value) if value is not None else None


def delete_review(db: Session, review_id: int) -> bool:
    db_review = db.get(models.Review, review_id)
    if not db_review:
        return False
    db.delete(db_review)
    _commit(db)
    return True


# -------------------- Favorites --------------------

def add_favorite(db: Session, user_id: int, event_id: int) -> models.Favorite:
    favorite = models.Favorite(user_id=user_id, event_id=event_id)
    db.add(favorite)
    _commit(db)
    db.refresh(favorite)
    return favorite


def remove_favorite(db: Session, user_id: int, event_id: int) -> bool:
    favorite = db.scalars(
        select(models.Favorite).where(
            models.Favorite.user_id == user_id,
            models.Favorite.event_id == event_id,
        )
    ).first()
    if favorite is None:
        return False
    db.delete(favorite)
    _commit(db)
    return True


def list_favorites(db: Session, user_id: int) -> List[models.Favorite]:
    return list(
        db.scalars(
            select(models.Favorite).where(models.Favorite.user_id == user_id).order_by(models.Favorite.id)
        )
    )
