"""Core fit utility modules."""
