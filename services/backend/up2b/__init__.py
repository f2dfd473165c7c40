"""Uniform client for image hosting providers."""

__version__ = "0.1.0"
