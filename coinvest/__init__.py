"""
CoInvest Ledger - Source Package

Shared bookkeeping for partners investing together in projects.

DESIGN PRINCIPLES:
1. One immutable ledger snapshot, replaced on every change
2. Fail early, fail visibly: requests are rejected, never silently fixed
3. All-or-nothing: a request writes all of its records or none
4. Every change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "CoInvest Team"
