"""Promote draft catalog products and their images into the live catalog."""

__version__ = "0.1.0"
