"""SQLAlchemy persistence (postgres backend)."""
