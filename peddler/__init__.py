"""Peddler: marketplace watchers with new-item and price-drop alerts."""

__version__ = "0.1.0"
