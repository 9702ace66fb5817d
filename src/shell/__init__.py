"""Interactive client for the debug console."""
