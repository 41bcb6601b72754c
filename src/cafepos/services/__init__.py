from .auth_service import AuthService
from .catalog_service import CatalogService
from .checkout_service import CheckoutService
from .concurrency import ProductLockManager
from .insights_service import InsightsService
from .ledger_service import LedgerService
from .receipt_service import ReceiptService
from .reporting_service import ReportingService

__all__ = [
    "AuthService",
    "CatalogService",
    "CheckoutService",
    "ProductLockManager",
    "InsightsService",
    "LedgerService",
    "ReceiptService",
    "ReportingService",
]
