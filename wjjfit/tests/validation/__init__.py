"""Validation tests."""
