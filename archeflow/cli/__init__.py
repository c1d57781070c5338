"""Command-line interface for archeflow."""
