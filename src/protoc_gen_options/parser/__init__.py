"""Schema parsers."""
