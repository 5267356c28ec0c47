"""
Credit card purchases ↔ aggregated bank charge reconciliation.
"""

from .reconciler import (
    CCBankProposal,
    CCBankReconciler,
    CCBankSummary,
    detect_card_last_four,
)

__all__ = [
    "CCBankProposal",
    "CCBankReconciler",
    "CCBankSummary",
    "detect_card_last_four",
]
