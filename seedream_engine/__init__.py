"""Seedream image generation pipeline."""

__version__ = "0.3.0"
