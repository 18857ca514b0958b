"""Target-language renderers."""
