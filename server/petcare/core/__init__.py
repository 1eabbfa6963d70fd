"""Core infrastructure: configuration, database, errors and observability."""
