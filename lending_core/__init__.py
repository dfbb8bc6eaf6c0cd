"""
Lending Core

Client registry, flat-rate installment loans and payment tracking, with
Decimal money math, hash-chained audit trails and derived account status.
"""

__version__ = "1.0.0"
