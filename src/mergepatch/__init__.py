"""JSON Merge Patch documents for typed Python models."""

__version__ = "0.1.0"
