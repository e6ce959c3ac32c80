"""Command-line interface for dbmeta."""
