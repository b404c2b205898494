"""Read-only query selectors."""

from stock_kernel.selectors.stock_selector import ANY_OUTLET, StockSelector

__all__ = ["ANY_OUTLET", "StockSelector"]
