"""PassportStudio: fixed-frame passport photo generation."""

__version__ = "0.1.0"
