"""Tests for the stock-aware cart store."""

import pytest

from storefront.cart import (
    INSUFFICIENT_STOCK,
    OUT_OF_STOCK,
    RUSH_MISMATCH,
    UNKNOWN_PRODUCT,
    CartStore,
    StockIssue,
    validate_against_stock,
)
from storefront.errors import ProductNotFoundError
from storefront.models import CartLine, Product, ProductCategory
from storefront.storage import CART_BLOB, BlobStorage


class FakeCatalog:
    def __init__(self, products):
        self.products = {p.id: p for p in products}

    def get_product(self, product_id):
        try:
            return self.products[product_id]
        except KeyError:
            raise ProductNotFoundError(product_id)


class TestCartMutations:
    def test_add_merges_same_product(self, cart_store, book):
        cart_store.add_item(book, 2)
        cart_store.add_item(book, 3)

        assert len(cart_store.lines) == 1
        assert cart_store.get_item_quantity(book.id) == 5

    def test_totals_follow_lines(self, cart_store, book, lp):
        cart_store.add_item(book, 2)
        cart_store.add_item(lp)

        assert cart_store.item_count == 3
        assert cart_store.subtotal == 2 * 100000 + 900000

    def test_add_non_positive_is_ignored(self, cart_store, book):
        cart_store.add_item(book, 0)
        cart_store.add_item(book, -3)

        assert cart_store.is_empty
        assert cart_store.item_count == 0

    def test_add_above_stock_is_accepted(self, cart_store, lp):
        cart_store.add_item(lp, 10)

        assert cart_store.get_item_quantity(lp.id) == 10

    def test_update_quantity_replaces(self, cart_store, book):
        cart_store.add_item(book, 2)
        cart_store.update_quantity(book.id, 7)

        assert cart_store.get_item_quantity(book.id) == 7
        assert cart_store.subtotal == 700000

    def test_update_to_zero_removes(self, cart_store, book):
        cart_store.add_item(book, 2)
        cart_store.update_quantity(book.id, 0)

        assert cart_store.is_empty
        assert cart_store.get_item_quantity(book.id) == 0

    def test_update_absent_product_is_noop(self, cart_store, book):
        cart_store.update_quantity(book.id, 4)

        assert cart_store.is_empty

    def test_remove_and_clear(self, cart_store, book, lp):
        cart_store.add_item(book)
        cart_store.add_item(lp)

        cart_store.remove_item(book.id)
        assert [line.product_id for line in cart_store.lines] == [lp.id]

        cart_store.clear_cart()
        assert cart_store.is_empty
        assert cart_store.subtotal == 0

    def test_line_order_is_preserved(self, cart_store, book, lp, sold_out):
        cart_store.add_item(lp)
        cart_store.add_item(book)
        cart_store.add_item(sold_out)
        cart_store.add_item(lp)

        assert [line.product_id for line in cart_store.lines] == [lp.id, book.id, sold_out.id]

    def test_cart_without_storage(self, book):
        store = CartStore()
        store.add_item(book, 1)

        assert store.item_count == 1


class TestCartPersistence:
    def test_every_mutation_is_persisted(self, temp_dir, book):
        storage = BlobStorage(temp_dir)
        store = CartStore(storage=storage)
        store.add_item(book, 2)

        assert storage.load(CART_BLOB)["lines"][0]["quantity"] == 2

        store.clear_cart()
        assert storage.load(CART_BLOB) == {"lines": []}

    def test_load_restores_lines(self, temp_dir, book, lp):
        storage = BlobStorage(temp_dir)
        store = CartStore(storage=storage)
        store.add_item(book, 2)
        store.add_item(lp, 1)

        restored = CartStore.load(storage)

        assert restored.get_item_quantity(book.id) == 2
        assert restored.get_item_quantity(lp.id) == 1
        assert restored.subtotal == store.subtotal

    def test_load_missing_blob_gives_empty_cart(self, temp_dir):
        store = CartStore.load(BlobStorage(temp_dir))

        assert store.is_empty

    def test_load_invalid_blob_gives_empty_cart(self, temp_dir):
        storage = BlobStorage(temp_dir)
        storage.save(CART_BLOB, {"lines": [{"quantity": 1}]})

        store = CartStore.load(storage)

        assert store.is_empty


class TestValidateAgainstStock:
    def test_no_issues(self, book):
        assert validate_against_stock([CartLine(book, 2)]) == []

    def test_insufficient_and_out_of_stock(self, lp, sold_out):
        issues = validate_against_stock([CartLine(lp, 5), CartLine(sold_out, 1)])

        assert [(i.product_id, i.kind) for i in issues] == [
            (lp.id, INSUFFICIENT_STOCK),
            (sold_out.id, OUT_OF_STOCK),
        ]
        assert issues[0].requested == 5
        assert issues[0].available == 3
        assert all(issue.blocking for issue in issues)

    def test_catalog_is_source_of_truth(self, book):
        restocked_low = Product(
            id=book.id, title=book.title, price=book.price, quantity=1,
            category=ProductCategory.BOOK, rush_eligible=True,
        )
        issues = validate_against_stock([CartLine(book, 2)], FakeCatalog([restocked_low]))

        assert len(issues) == 1
        assert issues[0].kind == INSUFFICIENT_STOCK
        assert issues[0].available == 1

    def test_unknown_product(self, book):
        issues = validate_against_stock([CartLine(book, 1)], FakeCatalog([]))

        assert issues[0].kind == UNKNOWN_PRODUCT

    def test_rush_flag_dropped_in_catalog(self, book):
        no_longer_rush = Product(
            id=book.id, title=book.title, price=book.price, quantity=book.quantity,
            category=ProductCategory.BOOK, rush_eligible=False,
        )
        catalog = FakeCatalog([no_longer_rush])

        assert validate_against_stock([CartLine(book, 1)], catalog) == []

        issues = validate_against_stock([CartLine(book, 1)], catalog, rush_requested=True)
        assert [i.kind for i in issues] == [RUSH_MISMATCH]
        assert issues[0].blocking

    def test_rush_flag_added_in_catalog(self, lp):
        now_rush = Product(
            id=lp.id, title=lp.title, price=lp.price, quantity=lp.quantity,
            category=ProductCategory.LP, rush_eligible=True,
        )

        issues = validate_against_stock(
            [CartLine(lp, 1)], FakeCatalog([now_rush]), rush_requested=True
        )

        assert [i.kind for i in issues] == [RUSH_MISMATCH]

    def test_issue_message(self, lp):
        issue = StockIssue(lp.id, lp.title, 5, 3)

        assert issue.format() == "'Abbey Road' requested 5, only 3 available"

    def test_issue_roundtrip(self):
        issue = StockIssue(3, "Kind of Blue", 4, 1, INSUFFICIENT_STOCK)

        assert StockIssue.from_dict(issue.to_dict()) == issue


@pytest.mark.parametrize("quantity", [1, 3])
def test_quantity_at_or_below_stock_passes(lp, quantity):
    assert validate_against_stock([CartLine(lp, quantity)]) == []
