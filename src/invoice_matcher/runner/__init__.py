"""
CLI runner module.

Provides commands:
- init-config / status
- automatch: Score (and --apply) an invoice's line items
- link / replace / unlink / doc-link: Single link operations
- cc-attach / cc-unmatch / cc-status / cc-propose: CC ↔ bank reconciliation
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
