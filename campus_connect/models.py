from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import relationship
from sqlalchemy.schema import CreateIndex, CreateTable

from .db import Base, BigId

USER_ROLES = ("student", "admin")
REGISTRATION_STATUSES = ("registered", "cancelled", "attended", "no_show")
ORDER_STATUSES = ("pending", "paid", "cancelled", "refunded")


def _fk(target: str, ondelete: str) -> ForeignKey:
    # surrogate keys only move during administrative remapping; follow them everywhere
    return ForeignKey(target, ondelete=ondelete, onupdate="CASCADE")


class User(Base):
    __tablename__ = "users"

    id = Column(BigId, primary_key=True, autoincrement=True)
    role = Column(
        Enum(*USER_ROLES, name="user_role", native_enum=False, create_constraint=True),
        nullable=False,
        default="student",
        server_default="student",
    )
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    # opaque credential hash, never plaintext
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=True, onupdate=func.current_timestamp())

    events_created = relationship("Event", back_populates="creator", passive_deletes=True)
    registrations = relationship("Registration", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    orders = relationship("Order", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    reviews = relationship("Review", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    favorites = relationship("Favorite", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Event(Base):
    __tablename__ = "events"

    id = Column(BigId, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    location = Column(String(255), nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=True)
    capacity = Column(Integer, nullable=True)
    # creator may be deleted; the event survives without attribution
    created_by = Column(BigId, _fk("users.id", "SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=True, onupdate=func.current_timestamp())

    creator = relationship("User", back_populates="events_created")
    registrations = relationship("Registration", back_populates="event", cascade="all, delete-orphan", passive_deletes=True)
    merch = relationship("Merch", back_populates="event", passive_deletes=True)
    reviews = relationship("Review", back_populates="event", cascade="all, delete-orphan", passive_deletes=True)
    favorites = relationship("Favorite", back_populates="event", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="chk_events_capacity"),
        Index("idx_events_starts_at", "starts_at"),
        Index("idx_events_location", "location"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, starts_at={self.starts_at})>"


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, _fk("users.id", "CASCADE"), nullable=False)
    event_id = Column(BigId, _fk("events.id", "CASCADE"), nullable=False)
    registered_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    # plain label; which transitions are legal is decided by the caller
    status = Column(
        Enum(*REGISTRATION_STATUSES, name="registration_status", native_enum=False, create_constraint=True),
        nullable=False,
        default="registered",
        server_default="registered",
    )

    user = relationship("User", back_populates="registrations")
    event = relationship("Event", back_populates="registrations")

    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_user_event"),
        Index("idx_reg_event", "event_id"),
        Index("idx_reg_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"


class Merch(Base):
    __tablename__ = "merch"

    id = Column(BigId, primary_key=True, autoincrement=True)
    event_id = Column(BigId, _fk("events.id", "SET NULL"), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    image_url = Column(String(500), nullable=True)
    # integer minor units, never float
    price_cents = Column(Integer, nullable=False)
    stock_qty = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=True, onupdate=func.current_timestamp())

    event = relationship("Event", back_populates="merch")
    # RESTRICT: the ORM must never touch line items here, the database refuses the delete
    order_items = relationship("OrderItem", back_populates="merch", passive_deletes="all")
    reviews = relationship("Review", back_populates="merch", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="chk_merch_price"),
        Index("idx_merch_event", "event_id"),
        Index("idx_merch_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Merch(id={self.id}, name={self.name}, price_cents={self.price_cents}, stock={self.stock_qty})>"


class Order(Base):
    __tablename__ = "orders"

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, _fk("users.id", "CASCADE"), nullable=False)
    status = Column(
        Enum(*ORDER_STATUSES, name="order_status", native_enum=False, create_constraint=True),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    # cached sum of quantity * unit_price_cents over the items; crud keeps it in step
    total_cents = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=True, onupdate=func.current_timestamp())

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.id",
    )

    __table_args__ = (
        CheckConstraint("total_cents >= 0", name="chk_orders_total"),
        Index("idx_orders_user", "user_id"),
        Index("idx_orders_status", "status"),
    )

    def items_total(self) -> int:
        return sum(item.line_total for item in self.items)

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, user={self.user_id}, status={self.status}, total_cents={self.total_cents})>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(BigId, primary_key=True, autoincrement=True)
    order_id = Column(BigId, _fk("orders.id", "CASCADE"), nullable=False)
    merch_id = Column(BigId, _fk("merch.id", "RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1, server_default="1")
    # price at purchase time, independent of later merch price changes
    unit_price_cents = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
    merch = relationship("Merch", back_populates="order_items")

    __table_args__ = (
        UniqueConstraint("order_id", "merch_id", name="uq_order_merch"),
        CheckConstraint("quantity > 0", name="chk_items_quantity"),
        CheckConstraint("unit_price_cents >= 0", name="chk_items_unit_price"),
    )

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price_cents

    def __repr__(self) -> str:
        return f"<OrderItem(order={self.order_id}, merch={self.merch_id}, qty={self.quantity})>"


class Review(Base):
    __tablename__ = "reviews"

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, _fk("users.id", "CASCADE"), nullable=False)
    # target is an event, a merch item, or both
    event_id = Column(BigId, _fk("events.id", "CASCADE"), nullable=True)
    merch_id = Column(BigId, _fk("merch.id", "CASCADE"), nullable=True)
    rating = Column(SmallInteger, nullable=False)
    comment = Column(Text)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    user = relationship("User", back_populates="reviews")
    event = relationship("Event", back_populates="reviews")
    merch = relationship("Merch", back_populates="reviews")

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="chk_review_rating"),
        CheckConstraint("(event_id IS NOT NULL) OR (merch_id IS NOT NULL)", name="chk_review_target"),
        Index("idx_reviews_event", "event_id"),
        Index("idx_reviews_merch", "merch_id"),
        Index("idx_reviews_user", "user_id"),
    )

    @property
    def target(self):
        from .schemas import target_from_ids

        return target_from_ids(self.event_id, self.merch_id)

    def __repr__(self) -> str:
        return f"<Review(id={self.id}, user={self.user_id}, event={self.event_id}, merch={self.merch_id}, rating={self.rating})>"


class Favorite(Base):
    __tablename__ = "favorites"

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, _fk("users.id", "CASCADE"), nullable=False)
    event_id = Column(BigId, _fk("events.id", "CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    user = relationship("User", back_populates="favorites")
    event = relationship("Event", back_populates="favorites")

    __table_args__ = (UniqueConstraint("user_id", "event_id", name="uq_fav"),)


DIALECTS = {
    "sqlite": sqlite.dialect,
    "mysql": mysql.dialect,
    "postgresql": postgresql.dialect,
}


def render_ddl(dialect_name: str) -> str:
    """Return the CREATE TABLE / CREATE INDEX statements for ``dialect_name``, in FK order."""
    try:
        dialect = DIALECTS[dialect_name]()
    except KeyError:
        raise ValueError(f"unsupported dialect: {dialect_name}") from None
    statements = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table).compile(dialect=dialect)).strip() + ";")
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index).compile(dialect=dialect)).strip() + ";")
    return "\n\n".join(statements) + "\n"
