"""Database layer: declarative base and ORM models."""
