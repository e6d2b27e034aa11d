"""Packaged tax table data."""
