"""Daily challenges and the one-attempt gate."""
