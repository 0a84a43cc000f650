"""Notification channels and fan-out."""
