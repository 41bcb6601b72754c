from __future__ import annotations

from typing import Iterable

from cafepos.domain.models import Product, Sale
from cafepos.services.reporting_service import deleted_product_label


class ReceiptService:
    def __init__(self, shop_name: str = "Cafe POS", width: int = 40):
        self.shop_name = shop_name
        self.width = width

    def render(self, sale: Sale, products: Iterable[Product]) -> str:
        names = {p.id: p.name for p in products}
        rule = "-" * self.width

        out = [
            self.shop_name.center(self.width),
            f"Sale #{sale.id}",
            sale.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            rule,
        ]
        for it in sale.items:
            name = names.get(it.product_id) or deleted_product_label(it.product_id)
            out.append(name[: self.width])
            detail = f"  {it.quantity} x {it.price:.2f}"
            amount = f"{it.subtotal:.2f}"
            out.append(detail + amount.rjust(self.width - len(detail)))
        out.append(rule)
        label = "TOTAL"
        amount = f"{sale.total:.2f}"
        out.append(label + amount.rjust(self.width - len(label)))
        return "\n".join(out) + "\n"
