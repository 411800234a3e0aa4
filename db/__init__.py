"""
Database migrations for the backend system tables.

Runtime DB access lives in services/backend. This package only holds the
Alembic configuration and revisions (`_api_keys`, `_ai_configs`).
"""
