"""Physna CLI - folder hierarchy resolution and caching for the asset API."""

__version__ = "0.1.0"
