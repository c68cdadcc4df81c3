from bson import ObjectId

ITEMS = [{"name": "Ironing", "details": "Shirt", "price": 30, "quantity": 3}]


def _order_at(client, db, headers, shop_id, status):
    order = client.post("/api/orders", headers=headers, json={"shop_id": shop_id, "items": ITEMS}).json()["order"]
    db["orderformerchant"].update_one({"_id": ObjectId(order["id"])}, {"$set": {"status": status}})
    return order["id"]


def _stored_status(db, order_id):
    return db["orderformerchant"].find_one({"_id": ObjectId(order_id)})["status"]


def test_merchant_accept_from_rider_coming(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "rider_coming")

    r = client.post(f"/api/orders/{order_id}/merchant-accept", json={"shop_id": shop_id})
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "at_shop"

    # accepting again is allowed from at_shop and changes nothing
    r = client.post(f"/api/orders/{order_id}/merchant-accept", json={"shop_id": shop_id})
    assert r.status_code == 200
    assert _stored_status(db, order_id) == "at_shop"


def test_merchant_accept_rejected_from_decision(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "decision")

    r = client.post(f"/api/orders/{order_id}/merchant-accept", json={"shop_id": shop_id})
    assert r.status_code == 400
    assert _stored_status(db, order_id) == "decision"


def test_merchant_accept_wrong_shop(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "rider_coming")

    r = client.post(f"/api/orders/{order_id}/merchant-accept", json={"shop_id": make_shop(type="full")})
    assert r.status_code == 403
    assert _stored_status(db, order_id) == "rider_coming"


def test_merchant_accept_unknown_order(client):
    r = client.post(f"/api/orders/{ObjectId()}/merchant-accept", json={"shop_id": "x"})
    assert r.status_code == 404


def test_merchant_status_outside_allowed_set(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "at_shop")

    for bad in ("cancelled", "decision", "rider_coming", "lost"):
        r = client.patch(f"/api/orders/{order_id}/merchant-status", json={"shop_id": shop_id, "status": bad})
        assert r.status_code == 400
        assert _stored_status(db, order_id) == "at_shop"


def test_merchant_status_moves_forward(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "at_shop")

    for status in ("in_progress", "out_for_delivery", "deliverying", "completed"):
        r = client.patch(f"/api/orders/{order_id}/merchant-status", json={"shop_id": shop_id, "status": status})
        assert r.status_code == 200
        assert r.json()["order"]["status"] == status


def test_merchant_status_never_goes_backwards(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "out_for_delivery")

    r = client.patch(f"/api/orders/{order_id}/merchant-status", json={"shop_id": shop_id, "status": "in_progress"})
    assert r.status_code == 400
    assert _stored_status(db, order_id) == "out_for_delivery"


def test_merchant_cannot_reopen_finished_orders(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "cancelled")

    r = client.patch(f"/api/orders/{order_id}/merchant-status", json={"shop_id": shop_id, "status": "completed"})
    assert r.status_code == 400
    assert _stored_status(db, order_id) == "cancelled"


def test_repeated_status_update_is_a_no_op(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    order_id = _order_at(client, db, headers, shop_id, "at_shop")
    body = {"shop_id": shop_id, "status": "completed"}

    first = client.patch(f"/api/orders/{order_id}/merchant-status", json=body)
    second = client.patch(f"/api/orders/{order_id}/merchant-status", json=body)
    assert first.status_code == second.status_code == 200
    assert _stored_status(db, order_id) == "completed"


def test_merchant_order_lists(client, db, make_user, make_shop):
    _, headers = make_user()
    shop_id = make_shop(type="full")
    pending = _order_at(client, db, headers, shop_id, "rider_coming")
    current = _order_at(client, db, headers, shop_id, "in_progress")
    done = _order_at(client, db, headers, shop_id, "completed")
    _order_at(client, db, headers, make_shop(type="full"), "rider_coming")

    def ids(kind):
        return [o["id"] for o in client.get(f"/api/orders/merchant/{shop_id}/{kind}").json()["orders"]]

    assert ids("pending") == [pending]
    assert ids("current") == [current]
    assert ids("history") == [done]
