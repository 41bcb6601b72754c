import sqlite3
from dataclasses import replace
from pathlib import Path

import pytest

from conftest import add_product

from cafepos.domain.cart import Cart
from cafepos.domain.errors import InsufficientStockError, TransientIOError, ValidationError
from cafepos.domain.models import CartLine
from cafepos.repositories.sqlite_repo import SqliteRepository
from cafepos.services.catalog_service import CatalogService
from cafepos.services.checkout_service import CheckoutService


def _setup(tmp_path: Path, repo_cls=SqliteRepository):
    repo = repo_cls(tmp_path / "checkout.db")
    repo.init_db()
    add_product(repo, "p1", "Espresso", 2.5, 100)
    add_product(repo, "p2", "Latte", 3.5, 8)
    add_product(repo, "p3", "Croissant", 2.75, 40)
    return repo, CheckoutService(repo)


def test_oversized_request_fails_then_smaller_request_succeeds(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    latte = repo.get_product_by_id("p2")
    cart = Cart()
    cart.add(latte)
    cart.set_quantity("p2", 10)

    with pytest.raises(InsufficientStockError) as exc_info:
        checkout.checkout(cart.lines())

    assert exc_info.value.product_id == "p2"
    assert exc_info.value.available == 8
    assert exc_info.value.stock == {"p2": 8}
    assert repo.get_product_by_id("p2").stock == 8
    assert repo.list_sales() == []
    assert cart.quantity_of("p2") == 10

    cart.set_quantity("p2", 3)
    sale = checkout.checkout(cart.lines())

    assert sale is not None
    assert repo.get_product_by_id("p2").stock == 5
    assert [(it.product_id, it.quantity, it.price) for it in sale.items] == [("p2", 3, 3.5)]
    assert sale.total == 3 * 3.5
    assert repo.list_sales() == [sale]


def test_any_short_line_rejects_whole_checkout(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    lines = [
        CartLine(product=repo.get_product_by_id("p1"), quantity=5),
        CartLine(product=repo.get_product_by_id("p3"), quantity=2),
        CartLine(product=repo.get_product_by_id("p2"), quantity=9),
    ]

    with pytest.raises(InsufficientStockError) as exc_info:
        checkout.checkout(lines)

    assert exc_info.value.product_id == "p2"
    assert exc_info.value.stock == {"p1": 100, "p3": 40, "p2": 8}
    assert [p.stock for p in repo.list_products()] == [100, 8, 40]
    assert repo.list_sales() == []


def test_success_decrements_each_product_by_requested_quantity(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    lines = [
        CartLine(product=repo.get_product_by_id("p1"), quantity=4),
        CartLine(product=repo.get_product_by_id("p3"), quantity=40),
    ]

    sale = checkout.checkout(lines, actor_user_id=1)

    assert repo.get_product_by_id("p1").stock == 96
    assert repo.get_product_by_id("p3").stock == 0
    assert repo.get_product_by_id("p2").stock == 8
    assert sale.total == 4 * 2.5 + 40 * 2.75
    assert sale.actor_user_id == 1
    assert repo.get_sale(sale.id) == sale


def test_sale_keeps_cart_price_after_later_price_edit(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    catalog = CatalogService(repo)
    cart = Cart()
    cart.add(repo.get_product_by_id("p1"))
    cart.set_quantity("p1", 2)

    sale = checkout.checkout(cart.lines())
    catalog.update_product(replace(repo.get_product_by_id("p1"), price=9.99))

    stored = repo.get_sale(sale.id)
    assert stored.items[0].price == 2.5
    assert stored.total == 5.0


def test_empty_cart_returns_no_sale_and_changes_nothing(tmp_path: Path):
    repo, checkout = _setup(tmp_path)

    assert checkout.checkout([]) is None
    assert checkout.checkout(Cart().lines()) is None
    assert repo.list_sales() == []
    assert [p.stock for p in repo.list_products()] == [100, 8, 40]


def test_stale_line_for_deleted_product_is_insufficient_stock(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    croissant = repo.get_product_by_id("p3")
    CatalogService(repo).delete_product("p3")

    with pytest.raises(InsufficientStockError) as exc_info:
        checkout.checkout([CartLine(product=croissant, quantity=1)])

    assert exc_info.value.product_id == "p3"
    assert exc_info.value.available == 0
    assert exc_info.value.stock == {"p3": None}
    assert repo.list_sales() == []


def test_repeated_lines_for_same_product_cannot_oversell(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    latte = repo.get_product_by_id("p2")

    with pytest.raises(InsufficientStockError):
        checkout.checkout([CartLine(product=latte, quantity=5), CartLine(product=latte, quantity=5)])

    assert repo.get_product_by_id("p2").stock == 8


def test_non_positive_quantity_is_rejected(tmp_path: Path):
    repo, checkout = _setup(tmp_path)

    with pytest.raises(ValidationError, match="Qty must be >= 1"):
        checkout.checkout([CartLine(product=repo.get_product_by_id("p1"), quantity=0)])


class FailingRepo(SqliteRepository):
    def _insert_sale_item(self, cur, sale_id, position, item):
        super()._insert_sale_item(cur, sale_id, position, item)
        if position == 1:
            raise sqlite3.OperationalError("disk I/O error")


def test_persistence_failure_rolls_back_and_surfaces_transient_error(tmp_path: Path):
    repo, checkout = _setup(tmp_path, repo_cls=FailingRepo)
    lines = [
        CartLine(product=repo.get_product_by_id("p1"), quantity=1),
        CartLine(product=repo.get_product_by_id("p3"), quantity=1),
    ]

    with pytest.raises(TransientIOError) as exc_info:
        checkout.checkout(lines)

    assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
    assert repo.get_product_by_id("p1").stock == 100
    assert repo.get_product_by_id("p3").stock == 40
    assert repo.list_sales() == []
