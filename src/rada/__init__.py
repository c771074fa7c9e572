"""Rada progress & gamification ledger API."""
