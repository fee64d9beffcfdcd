"""
UniFund Kernel - verification and funding workflow core

The state machines and ledgers behind student verification, campaign
publication, donation settlement and profile archival:
- Append-only verification ledger
- Atomic campaign crediting
- Typed, machine-readable errors
- Structured JSON logging
"""

__version__ = "0.1.0"
