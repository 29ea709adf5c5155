"""Command-line interface for modindex."""
