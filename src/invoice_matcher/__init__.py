"""
Invoice line item ↔ bank/credit-card transaction matching core.

Scores, filters, links and batch auto-matches invoice line items against
bank and credit-card transactions, and reconciles individual credit-card
purchases against the aggregated bank debit that pays them off.
"""

__version__ = "0.1.0"
