"""
Persistence for profiles and payment transactions.

- postgres: in-memory store for local development and tests
- postgres_real: SQLAlchemy store for Postgres (selected in payrelay/api/main.py)
"""
