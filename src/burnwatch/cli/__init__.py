"""CLI commands for burnwatch."""
