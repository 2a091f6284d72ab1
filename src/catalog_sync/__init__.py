"""Catalog sync: batch import of an external product catalog."""

__version__ = "1.0.0"
