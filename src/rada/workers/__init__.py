"""Background workers: event intake and scheduled jobs."""
