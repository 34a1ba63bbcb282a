from decimal import Decimal

import pytest

from storefront.domain.errors import AccessDenied, InvalidStatus, OrderNotFound
from storefront.domain.pricing import compute_totals
from storefront.domain.schemas import ShippingAddress


def _place(order_service, address, buyer_id=1, lines=((1, 7, "50.00", 2),)):
    items = [
        {
            "product_id": product_id,
            "seller_id": seller_id,
            "product_name": f"Product {product_id}",
            "quantity": qty,
            "unit_price": Decimal(price),
        }
        for product_id, seller_id, price, qty in lines
    ]
    totals = compute_totals((i["unit_price"], i["quantity"]) for i in items)
    return order_service.create_order(
        buyer_id=buyer_id,
        items=items,
        totals=totals,
        shipping_address=ShippingAddress(**address),
    )


class TestCreateOrder:
    def test_order_starts_pending_with_one_history_row(self, order_service, address):
        order = _place(order_service, address)

        assert order["status"] == "pending"
        assert order["payment_status"] == "pending"
        assert order["order_number"].startswith("ORD-")
        assert order["total"] == Decimal("120.00")
        assert order["shipping_address"]["city"] == "Springfield"

        history = order_service.get_status_history(order["id"], 1, "buyer")
        assert [(h.old_status, h.new_status) for h in history] == [(None, "pending")]

    def test_order_numbers_are_unique(self, order_service, address):
        first = _place(order_service, address)
        second = _place(order_service, address)

        assert first["order_number"] != second["order_number"]


class TestStatusMachine:
    def test_transitions_are_permissive(self, order_service, address):
        order = _place(order_service, address)

        order_service.update_status(order["id"], "delivered")
        updated = order_service.update_status(order["id"], "processing", "reopened")

        assert updated["status"] == "processing"
        history = order_service.get_status_history(order["id"], 1, "buyer")
        assert [(h.old_status, h.new_status) for h in history] == [
            (None, "pending"),
            ("pending", "delivered"),
            ("delivered", "processing"),
        ]
        assert history[-1].notes == "reopened"

    def test_unknown_status(self, order_service, address):
        order = _place(order_service, address)

        with pytest.raises(InvalidStatus):
            order_service.update_status(order["id"], "teleported")

    def test_missing_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.update_status(404, "shipped")

    def test_completed_payment_advances_to_processing(self, order_service, address):
        order = _place(order_service, address)

        updated = order_service.update_payment_status(order["id"], "completed", "pi_1")

        assert updated["payment_status"] == "completed"
        assert updated["status"] == "processing"
        assert updated["payment_intent_id"] == "pi_1"
        history = order_service.get_status_history(order["id"], 1, "buyer")
        assert history[-1].notes == "Payment received"

    def test_failed_payment_keeps_order_status(self, order_service, address):
        order = _place(order_service, address)

        updated = order_service.update_payment_status(order["id"], "failed")

        assert updated["status"] == "pending"
        assert len(order_service.get_status_history(order["id"], 1, "buyer")) == 1

    def test_unknown_payment_status(self, order_service, address):
        order = _place(order_service, address)

        with pytest.raises(InvalidStatus):
            order_service.update_payment_status(order["id"], "paid")


class TestVisibility:
    def test_buyer_sees_own_order_only(self, order_service, address):
        order = _place(order_service, address, buyer_id=1)

        assert order_service.get_order(order["id"], 1, "buyer")["id"] == order["id"]
        with pytest.raises(AccessDenied):
            order_service.get_order(order["id"], 2, "buyer")

    def test_seller_needs_an_item_in_the_order(self, order_service, address):
        order = _place(order_service, address, lines=((1, 7, "50.00", 1),))

        assert order_service.get_order(order["id"], 7, "seller")["id"] == order["id"]
        with pytest.raises(AccessDenied):
            order_service.get_order(order["id"], 8, "seller")

    def test_admin_sees_everything(self, order_service, address):
        order = _place(order_service, address)

        assert order_service.get_order(order["id"], 99, "admin")["id"] == order["id"]

    def test_missing_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.get_order(123, 1, "admin")


class TestListings:
    def test_buyer_listing_is_paginated(self, order_service, address):
        for _ in range(3):
            _place(order_service, address, buyer_id=1)
        _place(order_service, address, buyer_id=2)

        page = order_service.list_buyer_orders(1, page=1, limit=2)

        assert len(page["data"]) == 2
        assert page["pagination"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}

    def test_buyer_listing_filters_by_status(self, order_service, address):
        first = _place(order_service, address)
        _place(order_service, address)
        order_service.update_status(first["id"], "shipped")

        page = order_service.list_buyer_orders(1, status="shipped")

        assert [o["id"] for o in page["data"]] == [first["id"]]

    def test_seller_listing_shows_only_their_items(self, order_service, address):
        _place(order_service, address, lines=((1, 7, "50.00", 1), (2, 8, "20.00", 1)))
        _place(order_service, address, lines=((2, 8, "20.00", 1),))

        page = order_service.list_seller_orders(7)

        assert page["pagination"]["total"] == 1
        assert [i["product_id"] for i in page["data"][0]["items"]] == [1]


def test_lookup_by_order_number(order_service, address):
    order = _place(order_service, address)

    assert order_service.get_order_by_number(order["order_number"])["id"] == order["id"]
    with pytest.raises(OrderNotFound):
        order_service.get_order_by_number("ORD-0-MISSING")
