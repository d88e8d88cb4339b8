"""Upload reading and identifier extraction."""
