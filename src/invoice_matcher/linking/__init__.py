"""
Line item and document link state machine.
"""

from .manager import LinkErrorType, LinkManager, LinkResult, TransactionLinkSummary

__all__ = [
    "LinkErrorType",
    "LinkManager",
    "LinkResult",
    "TransactionLinkSummary",
]
