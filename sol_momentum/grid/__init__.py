"""Grid sub-strategy."""
