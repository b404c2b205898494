"""Write-side kernel services (flush-only)."""

from stock_kernel.services.reference_service import ReferenceService
from stock_kernel.services.replay_service import ReplayService
from stock_kernel.services.stock_ledger_service import StockLedgerService

__all__ = [
    "ReferenceService",
    "ReplayService",
    "StockLedgerService",
]
