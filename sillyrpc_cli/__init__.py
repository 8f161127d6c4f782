"""Command-line interface for the SillyRPC presence bridge."""
