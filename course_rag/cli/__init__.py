"""Command-line tools for managing the course document corpus."""
