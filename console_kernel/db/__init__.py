"""Database layer for the SQL-backed remote store."""
