from decimal import Decimal

import pytest

from storefront.domain.errors import (
    InsufficientStock,
    ItemNotInCart,
    ProductNotFound,
    ProductUnavailable,
    ValidationError,
)


class TestAddItem:
    def test_add_caches_price_name_and_seller(self, cart_service):
        cart = cart_service.add_item("u1", 1, 2)

        assert cart["item_count"] == 2
        assert cart["total"] == Decimal("100.00")
        line = cart["items"][0]
        assert line["price"] == Decimal("50.00")
        assert line["name"] == "Product 1"
        assert line["seller_id"] == 7

    def test_repeated_add_accumulates(self, cart_service):
        cart_service.add_item("u1", 1, 2)
        cart = cart_service.add_item("u1", 1, 3)

        assert cart["items"][0]["quantity"] == 5

    def test_cumulative_quantity_is_checked_against_stock(self, cart_service, cart_store):
        cart_service.add_item("u1", 2, 4)

        with pytest.raises(InsufficientStock):
            cart_service.add_item("u1", 2, 2)
        assert cart_store.get_items("u1")[2].quantity == 4

    def test_non_positive_quantity_is_rejected(self, cart_service):
        with pytest.raises(ValidationError):
            cart_service.add_item("u1", 1, 0)

    def test_unknown_product(self, cart_service):
        with pytest.raises(ProductNotFound):
            cart_service.add_item("u1", 999, 1)

    def test_inactive_product(self, cart_service, catalog):
        catalog.add(4, "1.00", 10, status="inactive")

        with pytest.raises(ProductUnavailable):
            cart_service.add_item("u1", 4, 1)

    def test_added_at_survives_later_adds(self, cart_service, cart_store):
        cart_service.add_item("u1", 1, 1)
        first = cart_store.get_items("u1")[1].added_at

        cart_service.add_item("u1", 1, 1)
        assert cart_store.get_items("u1")[1].added_at == first


class TestUpdateAndRemove:
    def test_update_sets_quantity(self, cart_service):
        cart_service.add_item("u1", 1, 1)
        cart = cart_service.update_item("u1", 1, 7)

        assert cart["items"][0]["quantity"] == 7

    def test_update_to_zero_removes_line(self, cart_service):
        cart_service.add_item("u1", 1, 1)
        cart = cart_service.update_item("u1", 1, 0)

        assert cart["items"] == []

    def test_update_above_stock(self, cart_service):
        cart_service.add_item("u1", 2, 1)

        with pytest.raises(InsufficientStock):
            cart_service.update_item("u1", 2, 6)

    def test_update_line_not_in_cart(self, cart_service):
        with pytest.raises(ItemNotInCart):
            cart_service.update_item("u1", 1, 1)

    def test_remove_and_clear(self, cart_service):
        cart_service.add_item("u1", 1, 1)
        cart_service.add_item("u1", 3, 1)

        assert [i["product_id"] for i in cart_service.remove_item("u1", 1)["items"]] == [3]
        assert cart_service.clear("u1")["items"] == []


class TestMerge:
    def test_overlapping_line_is_capped_at_stock(self, cart_service, cart_store, catalog):
        catalog.add(5, "10.00", 4)
        cart_service.add_item("guest:g1", 5, 3)
        cart_service.add_item("u1", 5, 2)

        cart = cart_service.merge("guest:g1", "u1")

        assert cart["items"][0]["quantity"] == 4
        assert cart_store.get_items("guest:g1") == {}

    def test_keeps_earliest_added_at(self, cart_service, cart_store):
        cart_service.add_item("guest:g1", 1, 1)
        guest_added = cart_store.get_items("guest:g1")[1].added_at
        cart_service.add_item("u1", 1, 1)

        cart_service.merge("guest:g1", "u1")

        assert cart_store.get_items("u1")[1].added_at == guest_added

    def test_guest_only_lines_are_carried_over(self, cart_service):
        cart_service.add_item("guest:g1", 3, 2)
        cart_service.add_item("u1", 1, 1)

        cart = cart_service.merge("guest:g1", "u1")

        assert {i["product_id"]: i["quantity"] for i in cart["items"]} == {1: 1, 3: 2}

    def test_products_gone_from_catalog_are_dropped(self, cart_service, catalog):
        cart_service.add_item("guest:g1", 3, 2)
        del catalog.products[3]

        cart = cart_service.merge("guest:g1", "u1")

        assert cart["items"] == []

    def test_sold_out_product_leaves_the_user_cart_too(self, cart_service, cart_store, catalog):
        catalog.add(5, "10.00", 4)
        cart_service.add_item("guest:g1", 5, 1)
        cart_service.add_item("u1", 5, 2)
        cart_service.add_item("u1", 1, 1)
        catalog.add(5, "10.00", 0)

        cart = cart_service.merge("guest:g1", "u1")

        assert [i["product_id"] for i in cart["items"]] == [1]
        assert 5 not in cart_store.get_items("u1")

    def test_deleted_product_leaves_the_user_cart_too(self, cart_service, cart_store, catalog):
        cart_service.add_item("guest:g1", 3, 1)
        cart_service.add_item("u1", 3, 4)
        del catalog.products[3]

        cart_service.merge("guest:g1", "u1")

        assert cart_store.get_items("u1") == {}

    def test_empty_guest_cart_leaves_user_cart(self, cart_service):
        cart_service.add_item("u1", 1, 1)

        cart = cart_service.merge("guest:nobody", "u1")

        assert cart["item_count"] == 1

    def test_cannot_merge_into_itself(self, cart_service):
        with pytest.raises(ValidationError):
            cart_service.merge("u1", "u1")


class TestValidate:
    def test_valid_cart(self, cart_service):
        cart_service.add_item("u1", 1, 2)

        report = cart_service.validate("u1")

        assert report["valid"] is True
        assert report["errors"] == []
        assert report["products"][1].stock == 10

    def test_reports_every_issue_without_mutating(self, cart_service, cart_store, catalog):
        cart_service.add_item("u1", 1, 2)
        cart_service.add_item("u1", 2, 5)
        cart_service.add_item("u1", 3, 1)
        catalog.add(1, "55.00", 10)
        catalog.add(2, "20.00", 3)
        del catalog.products[3]

        report = cart_service.validate("u1")

        codes = {(e["product_id"], e["code"]) for e in report["errors"]}
        assert codes == {(1, "price_changed"), (2, "insufficient_stock"), (3, "not_found")}
        stock_issue = next(e for e in report["errors"] if e["code"] == "insufficient_stock")
        assert stock_issue["current_stock"] == 3
        price_issue = next(e for e in report["errors"] if e["code"] == "price_changed")
        assert price_issue["new_price"] == Decimal("55.00")
        assert report["valid"] is False
        assert len(cart_store.get_items("u1")) == 3

    def test_inactive_product(self, cart_service, catalog):
        cart_service.add_item("u1", 1, 1)
        catalog.add(1, "50.00", 10, status="inactive")

        report = cart_service.validate("u1")

        assert [e["code"] for e in report["errors"]] == ["inactive"]
