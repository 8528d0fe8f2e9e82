"""Async database plumbing: declarative base, engine, sessions."""
