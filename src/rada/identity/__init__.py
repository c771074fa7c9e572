"""Dual-key user identity resolution."""
