"""Persistence: document store backends and SQL session management."""
