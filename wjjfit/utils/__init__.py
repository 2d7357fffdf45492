"""Logging, warning and progress bar helpers."""
