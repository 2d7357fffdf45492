"""Test suite for the fit utilities."""
