"""Change classification."""
