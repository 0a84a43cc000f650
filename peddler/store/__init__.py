"""Item Store implementations."""
