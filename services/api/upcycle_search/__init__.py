"""Geospatial material matching and AI-weighted ranking service."""

__version__ = "0.1.0"
