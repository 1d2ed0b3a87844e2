"""
Capital Kernel - cooperative share capital ledger

A transactional ledger for cooperative share capital with:
- Atomic purchase / sale / transfer orchestration
- Checksummed OGM payment references
- Bank statement import with automatic payment matching
- Idempotent dividend calculation over time-gated ownership
"""

__version__ = "0.1.0"
