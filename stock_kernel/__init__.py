"""
Stock Kernel - event-sourced stock ledger for a multi-outlet retail network.

An append-only stock movement log with:
- A derived, rebuildable position cache per (item, outlet)
- Atomic validate-and-append units of work
- Correlated two-sided transfers
- Read-time stock and expiry classification
"""

__version__ = "0.1.0"
