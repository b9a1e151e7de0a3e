"""IPhey trust-report backend: IP intelligence lookup and caching core."""

__version__ = "1.0.0"
