"""Command-line interface for turnrelay."""
