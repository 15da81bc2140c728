"""
Configuration for Session Ledger.

YAML config loading, ledger defaults and logging helpers.
"""
