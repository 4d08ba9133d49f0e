"""ReadNext sync server: two-way article sync with content healing."""

__version__ = "1.2.0"
