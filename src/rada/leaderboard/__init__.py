"""Leaderboard ranking over rolling windows."""
