"""Allocation of expense requests into ledger records."""

from coinvest.allocation.engine import AllocationEngine

__all__ = ["AllocationEngine"]
