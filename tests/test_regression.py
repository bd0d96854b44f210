from campus_connect import crud, schemas


def test_seed_total_stays_consistent_through_edits(seeded_session):
    # Guard against the cached order total drifting from its lines
    db = seeded_session
    assert crud.order_total_is_consistent(db, 1)
    crud.set_order_item_quantity(db, 1, 2, 4)
    crud.remove_order_item(db, 1, 1)
    crud.add_order_item(db, 1, 1, quantity=2)
    order = crud.get_order(db, 1)
    assert order.total_cents == 4 * 899 + 2 * 3999
    assert crud.order_total_is_consistent(db, 1)


def test_stock_round_trip_through_edits(seeded_session):
    db = seeded_session
    order = crud.place_order(
        db, schemas.OrderCreate(user_id=2, items=[schemas.OrderItemIn(merch_id=1, quantity=5)])
    )
    crud.set_order_item_quantity(db, order.id, 1, 2)
    crud.remove_order_item(db, order.id, 1)
    assert crud.get_merch(db, 1).stock_qty == 50
    assert crud.get_order(db, order.id).total_cents == 0
