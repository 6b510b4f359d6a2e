"""Core infrastructure: configuration, database, observability."""
