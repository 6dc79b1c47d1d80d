"""Tool registry, router and authorized XSS risk scanning for HTTP endpoints."""

__version__ = "0.1.0"