"""Tests for checkout and the order lifecycle."""

import pytest
from bson.objectid import ObjectId

import orders
from orders import OrderStatus, can_transition
from schemas import Address


def place(client, user, lines, address, key=None, **extra):
    body = {
        "items": [{"book_id": str(b["_id"]), "quantity": q} for b, q in lines],
        "shipping_address": address,
        "payment_method": "card",
        **extra,
    }
    headers = dict(user["headers"])
    if key:
        headers["Idempotency-Key"] = key
    return client.post("/api/orders", json=body, headers=headers)


def book_doc(db, book):
    return db["book"].find_one({"_id": book["_id"]})


def set_status(client, user, order_id, status, note=None):
    body = {"status": status}
    if note:
        body["note"] = note
    return client.put(f"/api/orders/{order_id}/status", json=body, headers=user["headers"])


class TestTransitions:
    @pytest.mark.parametrize("current,new", [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.PENDING, OrderStatus.CANCELLED),
        (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
        (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
        (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    ])
    def test_allowed(self, current, new):
        assert can_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        (OrderStatus.PENDING, OrderStatus.SHIPPED),
        (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
        (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
        (OrderStatus.DELIVERED, OrderStatus.PENDING),
        (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
        (OrderStatus.CONFIRMED, OrderStatus.PENDING),
    ])
    def test_refused(self, current, new):
        assert not can_transition(current, new)


class TestCheckout:
    def test_five_copies_at_ten_dollars(self, client, db, book, buyer, address):
        response = place(client, buyer, [(book, 5)], address)
        assert response.status_code == 201
        order = response.json()["order"]
        assert order["subtotal"] == 50.0
        assert order["tax"] == 4.0
        assert order["shipping"] == 0.0
        assert order["total_amount"] == 54.0
        assert order["status"] == "PENDING"
        assert order["payment_status"] == "PENDING"
        assert [h["status"] for h in order["status_history"]] == ["PENDING"]
        assert order["items"] == [{
            "book_id": str(book["_id"]),
            "title": book["title"],
            "quantity": 5,
            "price": 10.0,
            "total_price": 50.0,
        }]

        stored = book_doc(db, book)
        assert stored["stock"] == 0
        assert stored["status"] == "OUT_OF_STOCK"
        assert stored["sales_count"] == 5

    def test_small_order_pays_shipping(self, client, book, buyer, address):
        order = place(client, buyer, [(book, 1)], address).json()["order"]
        assert order["shipping"] == 5.99
        assert order["total_amount"] == 16.79

    def test_billing_defaults_to_shipping(self, client, book, buyer, address):
        order = place(client, buyer, [(book, 1)], address).json()["order"]
        assert order["billing_address"] == order["shipping_address"]

    def test_duplicate_lines_fold(self, client, db, book, buyer, address):
        order = place(client, buyer, [(book, 2), (book, 1)], address).json()["order"]
        assert len(order["items"]) == 1
        assert order["items"][0]["quantity"] == 3
        assert book_doc(db, book)["stock"] == 2

    def test_discount(self, client, book, admin, address):
        order = place(client, admin, [(book, 5)], address, discount=4).json()["order"]
        assert order["discount"] == 4.0
        assert order["total_amount"] == 50.0

    def test_buyer_cannot_set_discount(self, client, db, book, buyer, address):
        response = place(client, buyer, [(book, 5)], address, discount=4)
        assert response.status_code == 403
        assert response.json()["message"] == "Only admins can apply a discount"
        assert book_doc(db, book)["stock"] == 5
        assert db["order"].count_documents({}) == 0

    def test_insufficient_stock(self, client, db, book, buyer, address):
        response = place(client, buyer, [(book, 6)], address)
        assert response.status_code == 400
        assert response.json()["error_type"] == "InsufficientStock"
        assert response.json()["available_stock"] == 5
        assert db["order"].count_documents({}) == 0

    def test_one_short_line_fails_whole_order(self, client, db, make_book, buyer, address):
        plenty = make_book(stock=10)
        scarce = make_book(stock=1)
        response = place(client, buyer, [(plenty, 3), (scarce, 2)], address)
        assert response.status_code == 400
        assert book_doc(db, plenty)["stock"] == 10
        assert book_doc(db, scarce)["stock"] == 1

    def test_inactive_book_unavailable(self, client, db, book, buyer, address):
        db["book"].update_one({"_id": book["_id"]}, {"$set": {"status": "INACTIVE"}})
        response = place(client, buyer, [(book, 1)], address)
        assert response.status_code == 400
        assert response.json()["error_type"] == "BookUnavailable"

    def test_unknown_book(self, client, buyer, address):
        response = place(client, buyer, [({"_id": ObjectId()}, 1)], address)
        assert response.status_code == 400
        assert response.json()["error_type"] == "BookUnavailable"

    def test_requires_login(self, client, book, address):
        body = {
            "items": [{"book_id": str(book["_id"]), "quantity": 1}],
            "shipping_address": address,
            "payment_method": "card",
        }
        assert client.post("/api/orders", json=body).status_code == 401

    def test_empty_items_rejected(self, client, buyer, address):
        body = {"items": [], "shipping_address": address, "payment_method": "card"}
        response = client.post("/api/orders", json=body, headers=buyer["headers"])
        assert response.status_code == 400
        assert response.json()["message"] == "Validation Error"

    def test_clear_cart(self, client, db, book, buyer, address):
        client.post("/api/cart/items", json={"book_id": str(book["_id"]), "quantity": 2}, headers=buyer["headers"])
        response = place(client, buyer, [(book, 2)], address, clear_cart=True)
        assert response.status_code == 201
        cart = db["cart"].find_one({"user_id": buyer["id"]})
        assert cart["items"] == []
        assert cart["total_items"] == 0

    def test_last_copy_sold_once(self, client, db, make_book, buyer, other_buyer, address):
        last = make_book(stock=1)
        first = place(client, buyer, [(last, 1)], address)
        second = place(client, other_buyer, [(last, 1)], address)
        assert first.status_code == 201
        assert second.status_code == 400
        assert second.json()["error_type"] == "BookUnavailable"
        assert book_doc(db, last)["stock"] == 0
        assert db["order"].count_documents({}) == 1

    def test_rival_checkout_between_check_and_reserve(self, db, make_book, buyer, other_buyer, address,
                                                      monkeypatch):
        last = make_book(stock=1)
        price_lines = orders._price_lines
        rival = {}

        def checked_then_raced(*args):
            priced = price_lines(*args)
            if not rival:
                rival["started"] = True
                rival["order"], _ = orders.create_order(
                    db, other_buyer["id"], [(str(last["_id"]), 1)], Address(**address), "card")
            return priced

        monkeypatch.setattr(orders, "_price_lines", checked_then_raced)
        with pytest.raises(orders.InsufficientStock):
            orders.create_order(db, buyer["id"], [(str(last["_id"]), 1)], Address(**address), "card")

        assert rival["order"]["user_id"] == other_buyer["id"]
        assert db["order"].count_documents({}) == 1
        stored = book_doc(db, last)
        assert (stored["stock"], stored["sales_count"]) == (0, 1)


class TestIdempotency:
    def test_replay_returns_first_order(self, client, db, book, buyer, address):
        first = place(client, buyer, [(book, 2)], address, key="abc-1")
        second = place(client, buyer, [(book, 2)], address, key="abc-1")
        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["message"] == "Order already placed"
        assert second.json()["order"]["id"] == first.json()["order"]["id"]
        assert db["order"].count_documents({}) == 1
        assert book_doc(db, book)["stock"] == 3

    def test_key_is_scoped_per_user(self, client, db, book, buyer, other_buyer, address):
        assert place(client, buyer, [(book, 1)], address, key="same").status_code == 201
        assert place(client, other_buyer, [(book, 1)], address, key="same").status_code == 201
        assert db["order"].count_documents({}) == 2

    def test_no_key_places_new_orders(self, client, db, book, buyer, address):
        place(client, buyer, [(book, 1)], address)
        place(client, buyer, [(book, 1)], address)
        assert db["order"].count_documents({}) == 2

    def test_failed_write_releases_stock(self, db, book, buyer, address, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("write failed")

        monkeypatch.setattr(orders, "create_document", broken)
        with pytest.raises(RuntimeError):
            orders.create_order(db, buyer["id"], [(str(book["_id"]), 3)], Address(**address), "card")
        stored = book_doc(db, book)
        assert stored["stock"] == 5
        assert stored["sales_count"] == 0
        assert stored["status"] == "ACTIVE"


class TestStatusUpdates:
    @pytest.fixture
    def order(self, client, book, buyer, address):
        return place(client, buyer, [(book, 2)], address).json()["order"]

    def test_seller_walks_order_to_delivered(self, client, db, order, seller):
        for status in ("CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"):
            response = set_status(client, seller, order["id"], status)
            assert response.status_code == 200
            assert response.json()["order"]["status"] == status
        stored = db["order"].find_one({"_id": ObjectId(order["id"])})
        assert [h["status"] for h in stored["status_history"]] == [
            "PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED",
        ]
        assert stored["actual_delivery"] is not None

    def test_skipping_a_step_is_refused(self, client, db, order, admin):
        response = set_status(client, admin, order["id"], "SHIPPED")
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidTransition"
        assert db["order"].find_one({"_id": ObjectId(order["id"])})["status"] == "PENDING"

    def test_note_recorded(self, client, order, admin):
        response = set_status(client, admin, order["id"], "CONFIRMED", note="Payment checked")
        assert response.json()["order"]["status_history"][-1]["note"] == "Payment checked"

    def test_unknown_status_is_validation_error(self, client, order, admin):
        assert set_status(client, admin, order["id"], "LOST").status_code == 400

    def test_cancel_through_status_restores_stock(self, client, db, book, order, admin):
        response = set_status(client, admin, order["id"], "CANCELLED")
        assert response.status_code == 200
        assert book_doc(db, book)["stock"] == 5

    def test_buyer_cannot_manage(self, client, order, buyer):
        assert set_status(client, buyer, order["id"], "CONFIRMED").status_code == 403

    def test_unrelated_seller_cannot_manage(self, client, order, other_seller):
        assert set_status(client, other_seller, order["id"], "CONFIRMED").status_code == 403

    def test_stale_update_loses(self, db, order):
        stale = db["order"].find_one({"_id": ObjectId(order["id"])})
        orders.update_status(db, stale, OrderStatus.CONFIRMED)
        with pytest.raises(orders.InvalidTransition):
            orders.update_status(db, stale, OrderStatus.CONFIRMED)
        stored = db["order"].find_one({"_id": ObjectId(order["id"])})
        assert len(stored["status_history"]) == 2


class TestCancel:
    @pytest.fixture
    def order(self, client, book, buyer, address):
        return place(client, buyer, [(book, 5)], address).json()["order"]

    def cancel(self, client, user, order_id, reason=None):
        body = {"reason": reason} if reason else None
        return client.put(f"/api/orders/{order_id}/cancel", json=body, headers=user["headers"])

    def test_cancel_restores_stock_and_status(self, client, db, book, order, buyer):
        assert book_doc(db, book)["status"] == "OUT_OF_STOCK"

        response = self.cancel(client, buyer, order["id"], "Changed my mind")
        assert response.status_code == 200
        cancelled = response.json()["order"]
        assert cancelled["status"] == "CANCELLED"
        assert cancelled["cancellation_reason"] == "Changed my mind"
        assert [h["status"] for h in cancelled["status_history"]] == ["PENDING", "CANCELLED"]

        stored = book_doc(db, book)
        assert stored["stock"] == 5
        assert stored["status"] == "ACTIVE"
        assert stored["sales_count"] == 0

    def test_cancel_twice_restores_once(self, client, db, book, order, buyer):
        assert self.cancel(client, buyer, order["id"]).status_code == 200
        response = self.cancel(client, buyer, order["id"])
        assert response.status_code == 400
        assert response.json()["message"] == "Order cannot be cancelled at this stage"
        assert book_doc(db, book)["stock"] == 5

    def test_cannot_cancel_once_processing(self, client, db, book, order, buyer, admin):
        set_status(client, admin, order["id"], "CONFIRMED")
        set_status(client, admin, order["id"], "PROCESSING")
        response = self.cancel(client, buyer, order["id"])
        assert response.status_code == 400
        assert book_doc(db, book)["stock"] == 0

    def test_paid_order_is_refunded(self, client, db, order, buyer):
        db["order"].update_one({"_id": ObjectId(order["id"])}, {"$set": {"payment_status": "PAID"}})
        response = self.cancel(client, buyer, order["id"])
        assert response.json()["order"]["payment_status"] == "REFUNDED"

    def test_other_buyer_cannot_cancel(self, client, order, other_buyer):
        assert self.cancel(client, other_buyer, order["id"]).status_code == 403

    def test_stale_cancel_releases_nothing(self, db, book, order):
        stale = db["order"].find_one({"_id": ObjectId(order["id"])})
        orders.cancel_order(db, stale)
        with pytest.raises(orders.OrderNotCancellable):
            orders.cancel_order(db, stale)
        assert book_doc(db, book)["stock"] == 5


class TestTracking:
    @pytest.fixture
    def order(self, client, book, buyer, address):
        return place(client, buyer, [(book, 1)], address).json()["order"]

    def test_tracking_ships_processing_order(self, client, order, admin):
        set_status(client, admin, order["id"], "CONFIRMED")
        set_status(client, admin, order["id"], "PROCESSING")
        response = client.put(
            f"/api/orders/{order['id']}/tracking",
            json={"tracking_number": "1Z999"},
            headers=admin["headers"],
        )
        assert response.status_code == 200
        data = response.json()
        assert data["tracking_number"] == "1Z999"
        assert data["status"] == "SHIPPED"
        assert data["estimated_delivery"] is not None

    def test_tracking_on_pending_order_refused(self, client, order, admin):
        response = client.put(
            f"/api/orders/{order['id']}/tracking",
            json={"tracking_number": "1Z999"},
            headers=admin["headers"],
        )
        assert response.status_code == 400


class TestQueries:
    def test_owner_and_admin_can_view(self, client, book, buyer, other_buyer, admin, address):
        order = place(client, buyer, [(book, 1)], address).json()["order"]
        assert client.get(f"/api/orders/{order['id']}", headers=buyer["headers"]).status_code == 200
        assert client.get(f"/api/orders/{order['id']}", headers=admin["headers"]).status_code == 200
        assert client.get(f"/api/orders/{order['id']}", headers=other_buyer["headers"]).status_code == 403

    def test_missing_order(self, client, buyer):
        response = client.get(f"/api/orders/{ObjectId()}", headers=buyer["headers"])
        assert response.status_code == 404
        assert response.json()["message"] == "Order not found"

    def test_user_orders(self, client, book, buyer, other_buyer, address):
        place(client, buyer, [(book, 1)], address)
        place(client, buyer, [(book, 1)], address)
        response = client.get(f"/api/orders/user/{buyer['id']}", headers=buyer["headers"])
        assert response.json()["pagination"]["total"] == 2
        assert client.get(f"/api/orders/user/{buyer['id']}", headers=other_buyer["headers"]).status_code == 403

    def test_seller_orders(self, client, book, buyer, seller, other_seller, address):
        place(client, buyer, [(book, 1)], address)
        response = client.get(f"/api/orders/seller/{seller['id']}", headers=seller["headers"])
        assert response.json()["pagination"]["total"] == 1
        response = client.get(f"/api/orders/seller/{other_seller['id']}", headers=other_seller["headers"])
        assert response.json()["orders"] == []

    def test_admin_list_filters_by_status(self, client, book, buyer, admin, address):
        first = place(client, buyer, [(book, 1)], address).json()["order"]
        place(client, buyer, [(book, 1)], address)
        set_status(client, admin, first["id"], "CONFIRMED")
        response = client.get("/api/orders", params={"status": "CONFIRMED"}, headers=admin["headers"])
        assert [o["id"] for o in response.json()["orders"]] == [first["id"]]

    def test_list_is_admin_only(self, client, buyer):
        assert client.get("/api/orders", headers=buyer["headers"]).status_code == 403

    def test_stats(self, client, book, buyer, admin, address):
        place(client, buyer, [(book, 5)], address)
        restocked = client.post(
            f"/api/books/{book['_id']}/stock",
            json={"quantity": 5, "operation": "increase"},
            headers=admin["headers"],
        )
        assert restocked.status_code == 200
        place(client, buyer, [(book, 5)], address)

        stats = client.get("/api/orders/stats/summary", headers=admin["headers"]).json()
        assert stats["total_orders"] == 2
        assert stats["total_revenue"] == 108.0
        assert stats["average_order_value"] == 54.0
        assert stats["total_items"] == 10
        assert stats["status_breakdown"] == {"PENDING": 2}
        assert len(stats["recent_orders"]) == 2

    def test_stats_without_orders(self, client, admin):
        stats = client.get("/api/orders/stats/summary", headers=admin["headers"]).json()
        assert stats == {
            "total_orders": 0,
            "total_revenue": 0.0,
            "average_order_value": 0.0,
            "total_items": 0,
            "status_breakdown": {},
            "recent_orders": [],
        }
