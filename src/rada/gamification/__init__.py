"""XP ledger, progress aggregates, streaks and achievements."""
