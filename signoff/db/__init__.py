"""Database layer: declarative base, engine/session factory and ORM models."""
