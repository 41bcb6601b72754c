import threading
from pathlib import Path

from conftest import add_product

from cafepos.domain.errors import InsufficientStockError
from cafepos.domain.models import CartLine
from cafepos.repositories.sqlite_repo import SqliteRepository
from cafepos.services.checkout_service import CheckoutService
from cafepos.services.concurrency import ProductLockManager


def _setup(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "concurrency.db", timeout=10.0)
    repo.init_db()
    add_product(repo, "p1", "Espresso", 2.5, 100)
    add_product(repo, "p2", "Latte", 3.5, 8)
    add_product(repo, "p3", "Croissant", 2.75, 40)
    return repo, CheckoutService(repo)


def _run_concurrently(checkout: CheckoutService, carts: list[list[CartLine]]):
    barrier = threading.Barrier(len(carts))
    results: list = [None] * len(carts)

    def worker(i: int):
        barrier.wait()
        try:
            results[i] = checkout.checkout(carts[i])
        except InsufficientStockError as e:
            results[i] = e

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(len(carts))]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


def test_overlapping_demand_beyond_stock_exactly_one_succeeds(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    latte = repo.get_product_by_id("p2")
    carts = [[CartLine(product=latte, quantity=5)] for _ in range(4)]

    results = _run_concurrently(checkout, carts)

    failures = [r for r in results if isinstance(r, InsufficientStockError)]
    sales = [r for r in results if r is not None and not isinstance(r, InsufficientStockError)]
    assert len(sales) == 1
    assert len(failures) == 3
    assert all(f.available == 3 for f in failures)
    assert repo.get_product_by_id("p2").stock == 3
    assert len(repo.list_sales()) == 1


def test_disjoint_checkouts_both_succeed(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    carts = [
        [CartLine(product=repo.get_product_by_id("p1"), quantity=3)],
        [CartLine(product=repo.get_product_by_id("p3"), quantity=3)],
    ]

    results = _run_concurrently(checkout, carts)

    assert all(r is not None and not isinstance(r, Exception) for r in results)
    assert repo.get_product_by_id("p1").stock == 97
    assert repo.get_product_by_id("p3").stock == 37
    assert len(repo.list_sales()) == 2


def test_many_small_checkouts_never_oversell(tmp_path: Path):
    repo, checkout = _setup(tmp_path)
    latte = repo.get_product_by_id("p2")
    espresso = repo.get_product_by_id("p1")
    carts = [[CartLine(product=espresso, quantity=1), CartLine(product=latte, quantity=1)] for _ in range(12)]

    results = _run_concurrently(checkout, carts)

    sales = [r for r in results if r is not None and not isinstance(r, Exception)]
    assert len(sales) == 8
    assert repo.get_product_by_id("p2").stock == 0
    assert repo.get_product_by_id("p1").stock == 92


def test_lock_manager_blocks_same_product_but_not_disjoint():
    locks = ProductLockManager()
    entered_same = threading.Event()
    entered_other = threading.Event()

    def same():
        with locks.hold(["p2"]):
            entered_same.set()

    def other():
        with locks.hold(["p1"]):
            entered_other.set()

    with locks.hold(["p3", "p2"]):
        t_same = threading.Thread(target=same)
        t_other = threading.Thread(target=other)
        t_same.start()
        t_other.start()
        assert entered_other.wait(timeout=5)
        assert not entered_same.wait(timeout=0.2)

    assert entered_same.wait(timeout=5)
    t_same.join(timeout=5)
    t_other.join(timeout=5)
