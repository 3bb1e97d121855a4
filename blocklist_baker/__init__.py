"""Consolidate remote blocklists into a single deduplicated hosts file."""

__version__ = "1.0.0"
