from __future__ import annotations

from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from cafepos.domain.models import Product, ProductPerformance, Sale, SalesSummary


def deleted_product_label(product_id: str) -> str:
    return f"Deleted product {product_id}"


def summarize_sales(sales: Iterable[Sale], products: Iterable[Product]) -> SalesSummary:
    """Aggregate the ledger against a catalog snapshot.

    Every current product is listed, including zero-sellers. Products that
    appear in sales but no longer exist are listed under a placeholder name.
    """
    sales = list(sales)
    perf: dict[str, list] = {}
    for p in products:
        perf[p.id] = [p.name, 0, 0.0]

    for sale in sales:
        for item in sale.items:
            row = perf.get(item.product_id)
            if row is None:
                row = perf[item.product_id] = [deleted_product_label(item.product_id), 0, 0.0]
            row[1] += int(item.quantity)
            row[2] += item.price * item.quantity

    ranked = sorted(
        (ProductPerformance(product_id=pid, name=r[0], units=r[1], revenue=r[2]) for pid, r in perf.items()),
        key=lambda pp: pp.revenue,
        reverse=True,
    )
    top = ranked[0] if ranked and ranked[0].revenue > 0 else None

    return SalesSummary(
        sales_count=len(sales),
        total_revenue=sum(s.total for s in sales),
        top_seller=top,
        products=ranked,
    )


class ReportingService:
    def __init__(self, repo):
        self.repo = repo

    def sales_summary(self) -> SalesSummary:
        return summarize_sales(self.repo.list_sales(), self.repo.list_products())

    def export_sales_report_excel(self, path: str) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        sales = self.repo.list_sales()
        products = self.repo.list_products()
        summary = summarize_sales(sales, products)
        names = {pp.product_id: pp.name for pp in summary.products}

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Sales count"
        ws["B3"] = int(summary.sales_count)
        ws["A4"] = "Total revenue"
        ws["B4"] = float(summary.total_revenue)
        money(ws["B4"])
        ws["A5"] = "Top seller"
        ws["B5"] = summary.top_seller.name if summary.top_seller else "N/A"

        ws.append([])
        ws.append(["Product ID", "Product Name", "Units Sold", "Revenue"])
        bold_row(ws, 7)
        for pp in summary.products:
            ws.append([pp.product_id, pp.name, int(pp.units), float(pp.revenue)])
            money(ws[f"D{ws.max_row}"])
        set_widths(ws, {"A": 18, "B": 30, "C": 12, "D": 14})
        if ws.max_row >= 8:
            add_table(ws, "ProductPerformance", 7, 1, ws.max_row, 4)

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append(["Sale ID", "Created At", "Product ID", "Product Name", "Qty", "Unit Price", "Line Total"])
        bold_row(ws2, 1)

        out_row = 2
        for s in sales:
            for it in s.items:
                ws2.append([
                    int(s.id), s.created_at.isoformat(sep=" "),
                    it.product_id, names.get(it.product_id, it.product_id),
                    int(it.quantity), float(it.price), float(it.subtotal),
                ])
                money(ws2[f"F{out_row}"])
                money(ws2[f"G{out_row}"])
                out_row += 1

        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 10, "B": 22, "C": 18, "D": 30, "E": 6, "F": 14, "G": 14})
        if ws2.max_row >= 2:
            add_table(ws2, "SalesDetail", 1, 1, ws2.max_row, 7)

        wb.save(path)
