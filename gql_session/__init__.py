"""Incremental, schema-aware GraphQL query construction."""

__version__ = "0.3.0"
