"""Demo fixture rows: two users, one event, two merch items, one registration,
one paid order with two lines, one review."""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)

# opaque placeholder, not a usable credential
SEED_PASSWORD_HASH = "$2y$12$examplehash"


def load_seed(db: Session):
    """Insert the fixture rows in FK order and commit. Ids start at 1 on an empty database."""
    admin = models.User(
        role="admin", first_name="Campus", last_name="Admin",
        email="admin@campusconnect.test", password_hash=SEED_PASSWORD_HASH,
    )
    student = models.User(
        role="student", first_name="Mariia", last_name="Chalyk",
        email="mariia@example.com", password_hash=SEED_PASSWORD_HASH,
    )
    db.add_all([admin, student])
    db.flush()

    fair = models.Event(
        title="Welcome Fair",
        description="Meet societies and clubs.",
        location="ATU Main Hall",
        starts_at=datetime(2025, 10, 28, 10, 0, 0),
        ends_at=datetime(2025, 10, 28, 15, 0, 0),
        capacity=300,
        created_by=admin.id,
    )
    db.add(fair)
    db.flush()

    hoodie = models.Merch(
        event_id=fair.id, name="Campus Hoodie", description="Soft cotton hoodie with ATU crest.",
        price_cents=3999, stock_qty=50, image_url=None,
    )
    badge = models.Merch(
        event_id=fair.id, name="Event Badge", description="Limited edition enamel badge.",
        price_cents=899, stock_qty=200, image_url=None,
    )
    db.add_all([hoodie, badge])
    db.flush()

    db.add(models.Registration(user_id=student.id, event_id=fair.id, status="registered"))

    order = models.Order(user_id=student.id, status="paid", total_cents=4898)
    db.add(order)
    db.flush()
    db.add_all([
        models.OrderItem(order_id=order.id, merch_id=hoodie.id, quantity=1, unit_price_cents=3999),
        models.OrderItem(order_id=order.id, merch_id=badge.id, quantity=1, unit_price_cents=899),
    ])

    db.add(models.Review(user_id=student.id, event_id=fair.id, rating=5, comment="Great event!"))
    db.commit()
    logger.info("seed data loaded")
