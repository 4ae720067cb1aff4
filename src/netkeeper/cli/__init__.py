"""Command line interface for netkeeper."""
