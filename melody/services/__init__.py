"""Service layer for melody."""
