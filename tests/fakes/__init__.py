"""Fake collaborators for dependency injection in tests."""
