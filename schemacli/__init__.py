"""Command-line configuration resolution for database metadata crawls."""

__version__ = "0.3.0"
