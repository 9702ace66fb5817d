"""Command-line tools built on the debug console."""
