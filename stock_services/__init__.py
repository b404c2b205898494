"""
stock_services -- public command / query API of the stock ledger.

Callers use ``StockLedger``; the kernel's services and selectors are
internal building blocks.
"""

from stock_services.stock_ledger import StockLedger, is_retryable

__all__ = ["StockLedger", "is_retryable"]
