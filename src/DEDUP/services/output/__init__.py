"""Output file building."""
