"""
Libre PDF Converter package.

This module provides a FastAPI application exposing REST endpoints that turn
uploaded office documents into PDF through a chain of fallback renderers.
"""

__all__ = ["__version__"]

__version__ = "1.0.0"
