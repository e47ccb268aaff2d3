"""
Ledger Kernel

Typed records, store access and cross-cutting infrastructure for the
party ledger reconciliation core:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- Injectable clock
- Read-only selectors over the local relational store
"""

__version__ = "0.1.0"
