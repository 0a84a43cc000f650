"""Source Collectors: one per marketplace type."""
