"""
Pocketbook - Source Package

A personal-finance tracker: accounts, income/expense transactions
(optionally recurring), and receipt scanning that pre-fills the
transaction form.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms → System records
2. Account balance always equals the signed sum of its transactions
3. A bad scan never corrupts the form
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocketbook Team"
