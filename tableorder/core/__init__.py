"""Core configuration, errors and cross-cutting utilities."""
