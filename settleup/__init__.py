"""
Household Settle-Up - Source Package

Balance and settlement engine for households sharing expenses.
Given a month's shared expenses and each member's split ratio, it works
out who overpaid and who underpaid, and suggests the transfers that
bring everyone back to zero.

DESIGN PRINCIPLES:
1. Calculation is pure: same inputs, same balances, same transfers
2. Money is exact: Decimal at the edges, rationals inside
3. Fail early, fail visibly: bad inputs are rejected, never patched
4. A completed month is frozen
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Settle-Up Team"
