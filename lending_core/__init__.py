"""
Lending Core

Loan application validation, repayment schedule generation and loan
lifecycle management for microfinance products. All monetary math uses
Decimal with currency precision.
"""

__version__ = "1.0.0"
