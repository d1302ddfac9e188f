"""Command-line interface for crosstrainer."""
