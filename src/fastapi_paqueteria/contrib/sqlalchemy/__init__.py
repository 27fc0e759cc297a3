"""SQLAlchemy persistence for the brokerage service."""
