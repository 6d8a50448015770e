"""Provider Directory — searchable listings of transition-care providers and groups."""

__version__ = "0.4.0"
