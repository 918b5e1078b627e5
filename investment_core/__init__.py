"""
Investment Tracking Core

Back-office engine for investment plans: payment schedule generation,
expected returns, payment reconciliation and investment lifecycle, with
Decimal money math throughout.
"""

__version__ = "1.0.0"
