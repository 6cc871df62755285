"""PDF retrieval-and-answer pipeline."""

__version__ = "0.1.0"
