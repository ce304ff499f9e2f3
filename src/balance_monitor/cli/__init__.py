"""Command-line tools for the balance monitoring API."""
