"""Ledger/identity reconciliation sweep."""
