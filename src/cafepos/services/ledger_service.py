from __future__ import annotations

from cafepos.domain.errors import NotFoundError
from cafepos.domain.models import Sale


class LedgerService:
    """Read side of the append-only sale ledger.

    Sales are only ever appended by the checkout transaction.
    """

    def __init__(self, repo):
        self.repo = repo

    def list_sales(self) -> list[Sale]:
        return self.repo.list_sales()

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.repo.get_sale(int(sale_id))
        if not sale:
            raise NotFoundError(f"Sale not found: {sale_id}")
        return sale
