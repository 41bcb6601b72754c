from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol

from cafepos.domain.models import Sale, SaleItem


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def record_sale(self, items: Iterable[SaleItem], actor_user_id: int | None = None) -> Sale: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for the checkout write path.

    The repository runs validation and commit inside one SQL transaction.
    This class stamps the sale time and builds the returned Sale so services
    stay persistence-agnostic and never need a read-back after commit.
    """

    repo: object

    def __enter__(self) -> "RepositoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def record_sale(self, items: Iterable[SaleItem], actor_user_id: Optional[int] = None) -> Sale:
        items = tuple(items)
        created_at = datetime.now().replace(microsecond=0)
        sale_id = int(self.repo.record_sale(created_at.isoformat(sep=" "), items, actor_user_id=actor_user_id))
        return Sale(
            id=sale_id,
            items=items,
            total=sum(it.price * it.quantity for it in items),
            created_at=created_at,
            actor_user_id=actor_user_id,
        )
