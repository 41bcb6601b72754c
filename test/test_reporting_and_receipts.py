from datetime import datetime
from pathlib import Path

from openpyxl import load_workbook

from conftest import add_product

from cafepos.domain.models import CartLine, Product, Sale, SaleItem
from cafepos.repositories.sqlite_repo import SqliteRepository
from cafepos.services.checkout_service import CheckoutService
from cafepos.services.receipt_service import ReceiptService
from cafepos.services.reporting_service import ReportingService, summarize_sales


def _product(pid: str, name: str, price: float) -> Product:
    return Product(id=pid, name=name, price=price, stock=10, low_stock_threshold=2, category="Coffee")


def _sale(sale_id: int, *items: SaleItem) -> Sale:
    return Sale(
        id=sale_id,
        items=tuple(items),
        total=sum(it.price * it.quantity for it in items),
        created_at=datetime(2026, 1, 2, 9, 30, 0),
    )


def test_summary_totals_units_and_top_seller():
    products = [_product("p1", "Espresso", 2.5), _product("p6", "Sandwich", 7.5), _product("p4", "Muffin", 3.0)]
    sales = [
        _sale(1, SaleItem("p1", 1, 2.5), SaleItem("p6", 1, 7.5)),
        _sale(2, SaleItem("p1", 4, 2.5)),
    ]

    summary = summarize_sales(sales, products)

    assert summary.sales_count == 2
    assert summary.total_revenue == 20.0
    assert summary.top_seller.product_id == "p1"
    assert [(pp.product_id, pp.units, pp.revenue) for pp in summary.products] == [
        ("p1", 5, 12.5),
        ("p6", 1, 7.5),
        ("p4", 0, 0.0),
    ]


def test_summary_uses_sale_price_and_names_deleted_products():
    products = [_product("p1", "Espresso", 9.99)]
    sales = [_sale(1, SaleItem("p1", 2, 2.5), SaleItem("gone", 3, 1.0))]

    summary = summarize_sales(sales, products)
    by_id = {pp.product_id: pp for pp in summary.products}

    assert by_id["p1"].revenue == 5.0
    assert by_id["gone"].name == "Deleted product gone"
    assert by_id["gone"].units == 3


def test_summary_without_sales_has_no_top_seller():
    summary = summarize_sales([], [_product("p1", "Espresso", 2.5)])

    assert summary.sales_count == 0
    assert summary.total_revenue == 0
    assert summary.top_seller is None


def test_excel_export_writes_summary_and_detail(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "report.db")
    repo.init_db()
    add_product(repo, "p1", "Espresso", 2.5, 100)
    add_product(repo, "p2", "Latte", 3.5, 8)
    CheckoutService(repo).checkout([
        CartLine(product=repo.get_product_by_id("p1"), quantity=2),
        CartLine(product=repo.get_product_by_id("p2"), quantity=1),
    ])

    path = tmp_path / "report.xlsx"
    ReportingService(repo).export_sales_report_excel(str(path))

    wb = load_workbook(path)
    assert wb.sheetnames == ["Summary", "Sales Detail"]
    summary = wb["Summary"]
    assert summary["B3"].value == 1
    assert summary["B4"].value == 8.5
    assert summary["B5"].value == "Espresso"
    detail = wb["Sales Detail"]
    rows = list(detail.iter_rows(min_row=2, values_only=True))
    assert [(r[2], r[3], r[4], r[6]) for r in rows] == [("p1", "Espresso", 2, 5.0), ("p2", "Latte", 1, 3.5)]


def test_receipt_lists_items_and_total():
    sale = _sale(42, SaleItem("p2", 2, 3.5), SaleItem("gone", 1, 2.75))

    text = ReceiptService(width=32).render(sale, [_product("p2", "Latte", 3.5)])

    lines = text.splitlines()
    assert "Sale #42" in lines
    assert "2026-01-02 09:30:00" in lines
    assert "Latte" in lines
    assert lines[lines.index("Latte") + 1].endswith("7.00")
    assert "Deleted product gone" in lines
    assert lines[-1].startswith("TOTAL")
    assert lines[-1].endswith("9.75")
    assert all(len(line) <= 32 for line in lines)
