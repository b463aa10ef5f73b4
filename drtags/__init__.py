"""Tagging of media files and conversion of DaVinci Resolve timeline renders."""

__version__ = "0.1.0"
__all__ = ["__version__"]