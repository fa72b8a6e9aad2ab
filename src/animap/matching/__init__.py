"""Cross-catalog title matching."""
