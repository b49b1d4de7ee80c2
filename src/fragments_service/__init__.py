"""
Fragments Service package.

This module provides a FastAPI application storing typed content fragments
per owner and converting them between formats of the same family. The
health endpoint is available at `/health`.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
