"""Google Analytics 4 reporting CLI."""

__version__ = "1.0.0"
