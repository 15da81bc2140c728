"""
Core modules for Session Ledger.

This package contains usage extraction, billing identity, pricing,
reconciliation, aggregation and context window estimation.
"""
