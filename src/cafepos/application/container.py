from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cafepos.config import Settings, load_settings
from cafepos.repositories.sqlite_repo import SqliteRepository
from cafepos.services.auth_service import AuthService
from cafepos.services.catalog_service import CatalogService
from cafepos.services.checkout_service import CheckoutService
from cafepos.services.concurrency import ProductLockManager
from cafepos.services.insights_service import InsightsService
from cafepos.services.ledger_service import LedgerService
from cafepos.services.receipt_service import ReceiptService
from cafepos.services.reporting_service import ReportingService


@dataclass(frozen=True)
class AppContainer:
    settings: Settings
    repo: SqliteRepository
    locks: ProductLockManager
    catalog: CatalogService
    checkout: CheckoutService
    ledger: LedgerService
    reporting: ReportingService
    auth: AuthService
    insights: InsightsService
    receipts: ReceiptService


def build_container(db_path: Path | str, settings: Settings | None = None) -> AppContainer:
    settings = settings or load_settings()

    repo = SqliteRepository(db_path, timeout=settings.db_timeout_seconds)
    repo.init_db()

    # one lock manager per catalog: every checkout against this database shares it
    locks = ProductLockManager()

    return AppContainer(
        settings=settings,
        repo=repo,
        locks=locks,
        catalog=CatalogService(repo, locks=locks),
        checkout=CheckoutService(repo, locks=locks),
        ledger=LedgerService(repo),
        reporting=ReportingService(repo),
        auth=AuthService(repo),
        insights=InsightsService(settings.ai_api_key, model=settings.ai_model),
        receipts=ReceiptService(),
    )
