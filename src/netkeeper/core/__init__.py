"""Core functionality for netkeeper."""
